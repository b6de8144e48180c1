import httpx
import pytest
from httpx import ASGITransport


@pytest.fixture
def mock_env(monkeypatch):
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "test-token")
    monkeypatch.setenv("TWILIO_PHONE_NUMBER", "+15550001111")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://calls.example.com")
    monkeypatch.setenv("N8N_WEBHOOK_URL", "https://n8n.example.com/webhook/agent")
    monkeypatch.setenv("SUPABASE_URL", "https://db.example.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "test-supabase-key")
    monkeypatch.setenv("PACING_MIN_SECONDS", "0")
    monkeypatch.setenv("PACING_MAX_SECONDS", "0")


@pytest.fixture
async def client(mock_env):
    from app.main import app, lifespan

    async with lifespan(app):
        async with httpx.AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as c:
            yield c
