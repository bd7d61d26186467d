from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class SessionState(str, Enum):
    CONFIGURING = "configuring"
    ACTIVE = "active"
    ENDED = "ended"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"


SESSION_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.CONFIGURING: {SessionState.ACTIVE},
    SessionState.ACTIVE: {SessionState.ENDED},
    SessionState.ENDED: {SessionState.ANALYZING},
    SessionState.ANALYZING: {SessionState.ANALYZED},
    SessionState.ANALYZED: set(),
}


@dataclass(frozen=True)
class DifficultyProfile:
    level: int
    label: str
    tone: str


DIFFICULTY_PROFILES: dict[int, DifficultyProfile] = {
    1: DifficultyProfile(1, "INTERN SENSITIVITY", "Kind, forgiving. Walk in the park."),
    2: DifficultyProfile(2, "STANDARD HR", "Professional and balanced."),
    3: DifficultyProfile(3, "TEAM LEAD", "High standards. Strict but fair."),
    4: DifficultyProfile(4, "STAFF ENGINEER", "Arrogant. Challenges assumptions. Nitpicky."),
    5: DifficultyProfile(5, "FOUNDER MODE", "God Complex. Extremely Angry. Impossible Standards."),
}

Persona = Literal["technologist", "visionary"]
ActorRole = Literal["candidate", "recruiter"]
ChannelPersona = Literal["suggester", "interviewer"]


class SessionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str = Field(default="frontend", min_length=1)
    difficulty: int = Field(default=3, ge=1, le=5)
    persona: Persona = "technologist"
    useResume: bool = False
    actorRole: ActorRole = "candidate"

    @property
    def difficulty_profile(self) -> DifficultyProfile:
        return DIFFICULTY_PROFILES[self.difficulty]

    @property
    def resume_context_active(self) -> bool:
        return self.useResume and self.actorRole == "candidate"


class Turn(BaseModel):
    id: str
    role: Literal["user"] = "user"
    content: str


class ChannelMessage(BaseModel):
    id: str
    requestId: str
    persona: ChannelPersona
    content: str = ""
    final: bool = False

    @property
    def visible(self) -> bool:
        return bool(self.content.strip())


class TranscriptEntry(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class SessionEvent(BaseModel):
    type: Literal[
        "state_changed",
        "purchase_required",
        "messages_updated",
        "channel_finalized",
        "telemetry",
        "turn_failed",
        "report_updated",
        "warning",
    ]
    sessionId: str
    data: dict[str, Any] = Field(default_factory=dict)
