import asyncio
import logging
from dataclasses import dataclass

from dojo.models.scoring import RadarScores, ScoreReport
from dojo.models.session import SessionConfig, TranscriptEntry

LOGGER = logging.getLogger(__name__)

ANALYSIS_FAILED = "ANALYSIS_FAILED"
PERSISTENCE_FAILED = "PERSISTENCE_FAILED"

PROVISIONAL_REPORT = {
    "score": 72,
    "feedback": "Preliminary analysis allows us to estimate performance. Finalizing neural validation...",
    "radarData": {
        "technical": 65,
        "communication": 70,
        "problemSolving": 60,
        "confidence": 75,
        "culturalFit": 80,
    },
    "strengths": ["Communication", "Cultural Fit"],
    "weaknesses": ["Technical Depth (Analyzing...)", "Problem Solving (Analyzing...)"],
}


@dataclass(frozen=True)
class SessionWarning:
    code: str
    message: str


class ScorecardGenerator:
    """Produces the end-of-session report.

    ``provisional()`` is local and instant. ``analyze()`` asks the analysis
    service for the real report within ``timeout_seconds`` and returns ``None``
    on any failure, so the caller keeps the provisional one. ``persist()`` saves
    a finished session and reports whether it was stored.
    """

    def __init__(self, analysis_client, persistence_client=None, timeout_seconds: float = 45.0) -> None:
        self._analysis_client = analysis_client
        self._persistence_client = persistence_client
        self._timeout_seconds = timeout_seconds

    def provisional(self) -> ScoreReport:
        return ScoreReport(
            score=PROVISIONAL_REPORT["score"],
            feedback=PROVISIONAL_REPORT["feedback"],
            radarData=RadarScores(**PROVISIONAL_REPORT["radarData"]),
            strengths=list(PROVISIONAL_REPORT["strengths"]),
            weaknesses=list(PROVISIONAL_REPORT["weaknesses"]),
            status="provisional",
        )

    async def analyze(self, transcript: list[TranscriptEntry], config: SessionConfig) -> ScoreReport | None:
        try:
            report = await asyncio.wait_for(
                self._analysis_client.analyze(transcript, config),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            LOGGER.warning("Analysis timed out after %.1fs, keeping provisional report", self._timeout_seconds)
            return None
        except Exception as exc:
            LOGGER.warning("Analysis failed, keeping provisional report: %s", exc)
            return None
        return report.model_copy(update={"status": "final"})

    async def persist(self, config: SessionConfig, transcript: list[TranscriptEntry], report: ScoreReport) -> bool:
        if self._persistence_client is None:
            return False
        try:
            response = await self._persistence_client.save_interview(config, transcript, report)
        except Exception as exc:
            LOGGER.warning("Saving the finished interview failed: %s", exc)
            return False
        if not response.success:
            LOGGER.warning("Interview store refused the session: %s", response.error)
            return False
        LOGGER.info("Interview saved as %s", response.id)
        return True
