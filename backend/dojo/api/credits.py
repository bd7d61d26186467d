from fastapi import APIRouter, Depends

from dojo.api.dependencies import get_user_id
from dojo.models.credits import CreditBalanceResponse, CreditDeductRequest, CreditDeductResponse
from dojo.services.interview_store import interview_store

router = APIRouter(prefix="/credits", tags=["Credits"])


@router.get("", response_model=CreditBalanceResponse)
def get_credit_balance(user_id: str = Depends(get_user_id)) -> CreditBalanceResponse:
    return CreditBalanceResponse(userId=user_id, balance=interview_store.get_balance(user_id))


@router.post("/deduct", response_model=CreditDeductResponse)
def deduct_credits(
    payload: CreditDeductRequest | None = None,
    user_id: str = Depends(get_user_id),
) -> CreditDeductResponse:
    request_payload = payload or CreditDeductRequest()
    result = interview_store.deduct_credits(user_id, request_payload.amount)
    return CreditDeductResponse(
        success=result["success"],
        remaining=result["remaining"],
        status="deducted" if result["success"] else "insufficient_balance",
    )
