from dojo.client.backend import BackendClient
from dojo.client.credit_gate import CreditGate, CreditGranted, InsufficientBalance
from dojo.client.errors import (
    BackendError,
    InvalidSessionState,
    StreamInterrupted,
    TransportBusy,
    TransportError,
    TransportFailure,
)
from dojo.client.factory import build_session
from dojo.client.orchestrator import InterviewSession, TurnOutcome, TurnResult
from dojo.client.scorecard import ScorecardGenerator, SessionWarning
from dojo.client.speech import OpenAISpeechSynthesizer, SpeechNotifier
from dojo.client.transport import TurnStream, TurnTransport

__all__ = [
    "BackendClient",
    "BackendError",
    "CreditGate",
    "CreditGranted",
    "InsufficientBalance",
    "InterviewSession",
    "InvalidSessionState",
    "OpenAISpeechSynthesizer",
    "ScorecardGenerator",
    "SessionWarning",
    "SpeechNotifier",
    "StreamInterrupted",
    "TransportBusy",
    "TransportError",
    "TransportFailure",
    "TurnOutcome",
    "TurnResult",
    "TurnStream",
    "TurnTransport",
    "build_session",
]
