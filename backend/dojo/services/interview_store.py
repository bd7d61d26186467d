from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from dojo.config import signup_credits
from dojo.db import SessionLocal
from dojo.db_models import CreditAccountDB, InterviewRecordDB
from dojo.models.scoring import SaveInterviewRequest

LOGGER = logging.getLogger(__name__)


class InterviewStore:
    def __init__(self, session_factory=SessionLocal, starting_credits: int | None = None) -> None:
        self._session_factory = session_factory
        self._starting_credits = starting_credits

    def get_balance(self, user_id: str) -> int:
        with self._session_factory() as db:
            account = self._ensure_account(db, user_id)
            db.commit()
            return int(account.credits)

    def deduct_credits(self, user_id: str, amount: int = 1) -> dict:
        if amount < 1:
            raise ValueError("Deduction amount must be positive")
        with self._session_factory() as db:
            self._ensure_account(db, user_id)
            db.commit()

            # Check and decrement in one statement so concurrent starts cannot overdraw.
            result = db.execute(
                update(CreditAccountDB)
                .where(CreditAccountDB.user_id == str(user_id), CreditAccountDB.credits >= amount)
                .values(credits=CreditAccountDB.credits - amount, updated_at=datetime.now(timezone.utc))
            )
            if result.rowcount != 1:
                db.rollback()
                remaining = self._read_credits(db, user_id)
                LOGGER.info("Credit deduction refused for user %s (balance %s, requested %s)", user_id, remaining, amount)
                return {"success": False, "remaining": remaining}
            db.commit()
            return {"success": True, "remaining": self._read_credits(db, user_id)}

    def save_interview(self, user_id: str, payload: SaveInterviewRequest) -> dict:
        report = payload.report.model_dump(mode="json")
        row = InterviewRecordDB(
            interview_id=str(uuid4()),
            user_id=str(user_id),
            role=payload.role,
            difficulty=payload.difficulty,
            score=float(payload.report.score),
            feedback=payload.report.feedback,
            report_json=report,
            transcript_json=[entry.model_dump(mode="json") for entry in payload.transcript],
            created_at=datetime.now(timezone.utc),
        )
        with self._session_factory() as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._record_to_dict(row)

    def get_interview(self, interview_id: str) -> dict | None:
        with self._session_factory() as db:
            row = db.get(InterviewRecordDB, str(interview_id))
            if row is None:
                return None
            return self._record_to_dict(row)

    def list_interviews(self, user_id: str) -> list[dict]:
        with self._session_factory() as db:
            stmt = (
                select(InterviewRecordDB)
                .where(InterviewRecordDB.user_id == str(user_id))
                .order_by(InterviewRecordDB.created_at.desc())
            )
            rows = db.execute(stmt).scalars().all()
            return [self._record_to_dict(row) for row in rows]

    def _ensure_account(self, db, user_id: str) -> CreditAccountDB:
        account = db.get(CreditAccountDB, str(user_id))
        if account is not None:
            return account
        starting = self._starting_credits if self._starting_credits is not None else signup_credits()
        account = CreditAccountDB(
            user_id=str(user_id),
            credits=int(starting),
            created_at=datetime.now(timezone.utc),
        )
        db.add(account)
        try:
            db.flush()
        except IntegrityError:
            # Another request opened the account first.
            db.rollback()
            account = db.get(CreditAccountDB, str(user_id))
            if account is None:
                raise
        return account

    @staticmethod
    def _read_credits(db, user_id: str) -> int:
        value = db.execute(
            select(CreditAccountDB.credits).where(CreditAccountDB.user_id == str(user_id))
        ).scalar_one_or_none()
        return int(value or 0)

    @staticmethod
    def _record_to_dict(row: InterviewRecordDB) -> dict:
        return _jsonify(
            {
                "interviewId": row.interview_id,
                "userId": row.user_id,
                "role": row.role,
                "difficulty": int(row.difficulty),
                "score": float(row.score),
                "feedback": row.feedback,
                "report": dict(row.report_json or {}),
                "transcript": list(row.transcript_json or []),
                "createdAt": row.created_at,
            }
        )


interview_store = InterviewStore()


def _jsonify(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _jsonify(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonify(item) for item in value]
    return value
