import os
from dataclasses import dataclass

from dotenv import load_dotenv

SESSION_COST_CREDITS = 1
OPENING_FALLBACK_QUESTION = "Please introduce yourself and highlight your experience relevant to this role."


@dataclass(frozen=True)
class DojoSettings:
    backend_url: str
    user_id: str
    analysis_timeout_seconds: float
    chat_model: str
    analysis_model: str
    tts_model: str
    tts_voice: str
    signup_credits: int


def get_settings() -> DojoSettings:
    load_dotenv()
    return DojoSettings(
        backend_url=os.getenv("DOJO_BACKEND_URL", "http://localhost:8000").strip().rstrip("/"),
        user_id=os.getenv("DOJO_USER_ID", "local-user").strip() or "local-user",
        analysis_timeout_seconds=max(1.0, float(os.getenv("DOJO_ANALYSIS_TIMEOUT_SECONDS", "45"))),
        chat_model=chat_model(),
        analysis_model=analysis_model(),
        tts_model=os.getenv("DOJO_TTS_MODEL", "gpt-4o-mini-tts").strip() or "gpt-4o-mini-tts",
        tts_voice=os.getenv("DOJO_TTS_VOICE", "alloy").strip() or "alloy",
        signup_credits=signup_credits(),
    )


def openai_api_key() -> str:
    return os.getenv("OPENAI_API_KEY", "").strip()


def chat_model() -> str:
    return os.getenv("DOJO_CHAT_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"


def analysis_model() -> str:
    return os.getenv("DOJO_ANALYSIS_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"


def signup_credits() -> int:
    return max(0, int(os.getenv("DOJO_SIGNUP_CREDITS", "5")))
