from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from dojo.models.session import TranscriptEntry


class RadarScores(BaseModel):
    technical: float = Field(..., ge=0.0, le=100.0)
    communication: float = Field(..., ge=0.0, le=100.0)
    problemSolving: float = Field(..., ge=0.0, le=100.0)
    confidence: float = Field(..., ge=0.0, le=100.0)
    culturalFit: float = Field(..., ge=0.0, le=100.0)


class ScoreReport(BaseModel):
    score: float = Field(..., ge=0.0, le=100.0)
    feedback: str = ""
    radarData: RadarScores
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    status: Literal["provisional", "final"] = "final"

    @property
    def grade(self) -> str:
        return score_to_grade(self.score)


class AnalysisRequest(BaseModel):
    transcript: list[TranscriptEntry] = Field(default_factory=list)
    role: str = Field(..., min_length=1)
    difficulty: int = Field(default=3, ge=1, le=5)


class AnalysisResponse(BaseModel):
    success: bool
    data: ScoreReport | None = None
    provider: str | None = None
    error: str | None = None


class SaveInterviewRequest(BaseModel):
    role: str = Field(..., min_length=1)
    difficulty: int = Field(default=3, ge=1, le=5)
    report: ScoreReport
    transcript: list[TranscriptEntry] = Field(default_factory=list)


class SaveInterviewResponse(BaseModel):
    success: bool
    id: str | None = None
    error: str | None = None


class InterviewRecordSummary(BaseModel):
    interviewId: str
    role: str
    difficulty: int
    score: float
    feedback: str
    createdAt: datetime


def score_to_grade(score: float) -> str:
    if score >= 97:
        return "S"
    if score >= 90:
        return "A"
    if score >= 80:
        return "B"
    if score >= 70:
        return "C"
    return "F"
