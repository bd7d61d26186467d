import aiohttp

from dojo.client.backend import BackendClient
from dojo.client.credit_gate import CreditGate
from dojo.client.orchestrator import InterviewSession
from dojo.client.scorecard import ScorecardGenerator
from dojo.client.speech import OpenAISpeechSynthesizer, SpeechNotifier
from dojo.client.transport import TurnTransport
from dojo.config import DojoSettings, get_settings
from dojo.models.session import SessionConfig


def build_session(
    config: SessionConfig,
    http: aiohttp.ClientSession,
    settings: DojoSettings | None = None,
    speak: bool = False,
    session_id: str | None = None,
) -> tuple[InterviewSession, SpeechNotifier | None]:
    """Wires a session against the configured backend over one shared HTTP session."""
    settings = settings or get_settings()
    backend = BackendClient(settings.backend_url, settings.user_id, session=http)
    transport = TurnTransport(settings.backend_url, session=http, user_id=settings.user_id)
    session = InterviewSession(
        config,
        transport=transport,
        credit_gate=CreditGate(backend),
        scorecard=ScorecardGenerator(backend, backend, timeout_seconds=settings.analysis_timeout_seconds),
        session_id=session_id,
    )
    notifier = None
    if speak:
        notifier = SpeechNotifier(OpenAISpeechSynthesizer(model=settings.tts_model, voice=settings.tts_voice))
        notifier.attach(session)
    return session, notifier
