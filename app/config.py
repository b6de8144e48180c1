from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    twilio_account_sid: str
    twilio_auth_token: str
    twilio_phone_number: str
    public_base_url: str
    n8n_webhook_url: str
    supabase_url: str
    supabase_key: str
    log_level: str = "INFO"

    # Conversation
    confidence_threshold: float = 0.4
    max_messages: int = 10
    max_call_duration_seconds: int = 180
    max_reprompts: int = 3
    voice: str = "Polly.Tatyana"
    language: str = "ru-RU"

    # Collaborator timeouts (seconds)
    reply_timeout_seconds: float = 15.0
    store_timeout_seconds: float = 10.0

    # Campaign
    pacing_min_seconds: float = 30.0
    pacing_max_seconds: float = 60.0
    country_code: str = "380"
    campaign_country: str = ""
