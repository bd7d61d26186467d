from pydantic import BaseModel, Field

from dojo.models.session import Persona, SessionConfig, TranscriptEntry


class ChatRequest(BaseModel):
    messages: list[TranscriptEntry] = Field(default_factory=list)
    user_role: str = Field(default="Candidate", min_length=1)
    is_grill_mode: bool = False
    intensity: int = Field(default=3, ge=1, le=5)
    persona: Persona = "technologist"

    @classmethod
    def from_session(cls, transcript: list[TranscriptEntry], config: SessionConfig) -> "ChatRequest":
        return cls(
            messages=list(transcript),
            user_role=config.role,
            is_grill_mode=config.resume_context_active,
            intensity=config.difficulty,
            persona=config.persona,
        )

    @property
    def is_opening(self) -> bool:
        return not self.messages

    @property
    def last_user_message(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""
