from dataclasses import dataclass

from twilio.twiml.voice_response import VoiceResponse

GREETING = (
    "Здравствуйте! Это Елена из компании EMME3D. "
    "Мы печатаем автозапчасти на 3D принтере. Вам удобно сейчас разговаривать?"
)
REPROMPT = "Простите, я вас не поняла. Можете повторить?"
NO_INPUT_GOODBYE = "Я вас не услышала. Спасибо за разговор, до свидания!"
INITIAL_GOODBYE = "Спасибо за внимание. Хорошего дня!"
TECHNICAL_ERROR = "Простите, произошла техническая ошибка."
REPROMPT_LIMIT_GOODBYE = "К сожалению, связь плохая. Мы перезвоним вам позже. До свидания!"

GATHER_TIMEOUT = 10
SPEECH_MODEL = "experimental_conversations"


@dataclass(frozen=True)
class VoiceOptions:
    voice: str = "Polly.Tatyana"
    language: str = "ru-RU"
    gather_action: str = "/process-customer-response"


def _say(response: VoiceResponse, text: str, options: VoiceOptions) -> None:
    response.say(text, voice=options.voice, language=options.language)


def _gather(response: VoiceResponse, options: VoiceOptions) -> None:
    response.gather(
        input="speech",
        action=options.gather_action,
        method="POST",
        timeout=GATHER_TIMEOUT,
        speech_timeout="auto",
        language=options.language,
        enhanced=True,
        speech_model=SPEECH_MODEL,
    )


def build_greeting(options: VoiceOptions = VoiceOptions(), greeting: str = GREETING) -> str:
    """Opening line, then listen; hang up politely if the caller stays silent."""
    response = VoiceResponse()
    _say(response, greeting, options)
    _gather(response, options)
    _say(response, INITIAL_GOODBYE, options)
    response.hangup()
    return str(response)


def build_turn(text: str, options: VoiceOptions = VoiceOptions()) -> str:
    """Speak *text* and wait for the next utterance."""
    response = VoiceResponse()
    _say(response, text, options)
    _gather(response, options)
    _say(response, NO_INPUT_GOODBYE, options)
    response.hangup()
    return str(response)


def build_reprompt(options: VoiceOptions = VoiceOptions()) -> str:
    return build_turn(REPROMPT, options)


def build_hangup(text: str | None, options: VoiceOptions = VoiceOptions()) -> str:
    """Speak *text* (if any) and end the call."""
    response = VoiceResponse()
    if text:
        _say(response, text, options)
    response.hangup()
    return str(response)


def build_error(options: VoiceOptions = VoiceOptions()) -> str:
    return build_hangup(TECHNICAL_ERROR, options)
