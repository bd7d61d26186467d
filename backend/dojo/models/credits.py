from typing import Literal

from pydantic import BaseModel, Field


class CreditBalanceResponse(BaseModel):
    userId: str
    balance: int


class CreditDeductRequest(BaseModel):
    amount: int = Field(default=1, ge=1)


class CreditDeductResponse(BaseModel):
    success: bool
    remaining: int
    status: Literal["deducted", "insufficient_balance"] = "deducted"
