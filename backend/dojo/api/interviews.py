import logging

from fastapi import APIRouter, Depends, HTTPException, status

from dojo.api.dependencies import get_user_id
from dojo.models.scoring import (
    AnalysisRequest,
    AnalysisResponse,
    InterviewRecordSummary,
    SaveInterviewRequest,
    SaveInterviewResponse,
    ScoreReport,
)
from dojo.services.interview_analyzer import analyze_interview
from dojo.services.interview_store import interview_store

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/interviews", tags=["Interviews"])


@router.post("/analyze", response_model=AnalysisResponse)
def analyze(payload: AnalysisRequest) -> AnalysisResponse:
    try:
        result = analyze_interview(payload.transcript, payload.role, payload.difficulty)
        report = ScoreReport(**result["report"])
    except Exception as exc:
        LOGGER.exception("Interview analysis failed")
        return AnalysisResponse(success=False, error=str(exc))
    return AnalysisResponse(success=True, data=report, provider=result["provider"])


@router.post("", response_model=SaveInterviewResponse, status_code=status.HTTP_201_CREATED)
def save_interview(payload: SaveInterviewRequest, user_id: str = Depends(get_user_id)) -> SaveInterviewResponse:
    record = interview_store.save_interview(user_id, payload)
    return SaveInterviewResponse(success=True, id=record["interviewId"])


@router.get("", response_model=list[InterviewRecordSummary])
def list_interviews(user_id: str = Depends(get_user_id)) -> list[InterviewRecordSummary]:
    return [InterviewRecordSummary(**record) for record in interview_store.list_interviews(user_id)]


@router.get("/{interviewId}")
def get_interview(interviewId: str, user_id: str = Depends(get_user_id)) -> dict:
    record = interview_store.get_interview(interviewId)
    if record is None or record["userId"] != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Interview not found")
    return record
