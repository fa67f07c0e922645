from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from examprep.api.deps import get_dispatcher, get_storage
from examprep.core.auth import require_user, TokenData
from examprep.errors import NotFoundError
from examprep.models.orm import AttemptStatus

router = APIRouter()


class SubmitAttempt(BaseModel):
    time_taken: Optional[int] = Field(default=None, ge=0)


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str; test_id: str; user_id: str; status: str
    submitted_at: Optional[datetime] = None; time_taken: Optional[int] = None
    score: Optional[float] = None; max_score: Optional[float] = None; percentile: Optional[float] = None


class SubmittedAttempt(AttemptOut):
    job_id: Optional[str] = None
    message: str


class AttemptResult(AttemptOut):
    summary: Optional[dict] = None


def load_attempt(storage, attempt_id: str):
    attempt = storage.get_test_attempt(attempt_id)
    if attempt is None:
        raise NotFoundError("Attempt", attempt_id)
    return attempt


@router.patch("/{attempt_id}/submit", response_model=SubmittedAttempt)
def submit_attempt(attempt_id: str, payload: SubmitAttempt,
                   user: TokenData = Depends(require_user),
                   storage=Depends(get_storage), dispatcher=Depends(get_dispatcher)):
    attempt = load_attempt(storage, attempt_id)
    if attempt.user_id != user.sub:
        raise HTTPException(403, "Forbidden")
    if attempt.status == AttemptStatus.SUBMITTED.value:
        raise HTTPException(409, "Attempt already submitted")
    storage.update_test_attempt(attempt_id, {
        "status": AttemptStatus.PROCESSING.value,
        "submitted_at": datetime.utcnow(),
        "time_taken": payload.time_taken,
    })
    job_id = dispatcher.score_test(attempt.id, attempt.user_id, attempt.test_id)
    updated = load_attempt(storage, attempt_id)
    return SubmittedAttempt(
        **AttemptOut.model_validate(updated).model_dump(),
        job_id=job_id,
        message="Test submitted successfully. Your score is being calculated.",
    )


@router.get("/{attempt_id}/result", response_model=AttemptResult)
def attempt_result(attempt_id: str, user: TokenData = Depends(require_user),
                   storage=Depends(get_storage)):
    attempt = load_attempt(storage, attempt_id)
    if not user.can_view(attempt.user_id):
        raise HTTPException(403, "Forbidden")
    return AttemptResult.model_validate(attempt)
