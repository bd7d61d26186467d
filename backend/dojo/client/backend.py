import logging
from typing import Any

import aiohttp

from dojo.client.errors import BackendError
from dojo.models.credits import CreditBalanceResponse, CreditDeductResponse
from dojo.models.scoring import AnalysisResponse, SaveInterviewRequest, SaveInterviewResponse, ScoreReport
from dojo.models.session import SessionConfig, TranscriptEntry

LOGGER = logging.getLogger(__name__)


class BackendClient:
    """HTTP client for the credit ledger, analysis and persistence endpoints."""

    def __init__(
        self,
        base_url: str,
        user_id: str,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._user_id = user_id
        self._session = session
        self._owns_session = session is None

    async def get_balance(self) -> int:
        data = await self._request("GET", "/credits")
        return CreditBalanceResponse(**data).balance

    async def deduct(self, amount: int = 1) -> CreditDeductResponse:
        data = await self._request("POST", "/credits/deduct", json={"amount": amount})
        return CreditDeductResponse(**data)

    async def analyze(self, transcript: list[TranscriptEntry], config: SessionConfig) -> ScoreReport:
        data = await self._request(
            "POST",
            "/interviews/analyze",
            json={
                "transcript": [entry.model_dump(mode="json") for entry in transcript],
                "role": config.role,
                "difficulty": config.difficulty,
            },
        )
        response = AnalysisResponse(**data)
        if not response.success or response.data is None:
            raise BackendError(response.error or "Analysis did not return a report")
        return response.data

    async def save_interview(
        self,
        config: SessionConfig,
        transcript: list[TranscriptEntry],
        report: ScoreReport,
    ) -> SaveInterviewResponse:
        payload = SaveInterviewRequest(
            role=config.role,
            difficulty=config.difficulty,
            report=report,
            transcript=transcript,
        )
        data = await self._request("POST", "/interviews", json=payload.model_dump(mode="json"))
        return SaveInterviewResponse(**data)

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict[str, Any]:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        url = f"{self._base_url}{path}"
        try:
            async with self._session.request(method, url, json=json, headers={"X-User-Id": self._user_id}) as response:
                if response.status >= 400:
                    detail = await response.text()
                    raise BackendError(f"{method} {path} returned {response.status}: {detail[:200]}", status=response.status)
                return await response.json()
        except aiohttp.ClientError as exc:
            LOGGER.warning("%s %s failed: %s", method, path, exc)
            raise BackendError(f"{method} {path} failed: {exc}") from exc
