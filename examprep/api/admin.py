from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from examprep.api.attempts import load_attempt
from examprep.api.deps import get_dispatcher, get_redis, get_storage
from examprep.core.auth import ADMIN, require_roles
from examprep.models.orm import AttemptStatus

router = APIRouter()


class Rescore(BaseModel):
    attempt_id: str
    job_id: Optional[str] = None


class JobStatus(BaseModel):
    id: str
    queue: Optional[str] = None
    state: Optional[str] = None
    status: Optional[str] = None
    result: Any = None
    error: Optional[str] = None


@router.post("/attempts/{attempt_id}/rescore", response_model=Rescore, dependencies=[Depends(require_roles(ADMIN))])
def rescore_attempt(attempt_id: str, storage=Depends(get_storage), dispatcher=Depends(get_dispatcher)):
    attempt = load_attempt(storage, attempt_id)
    storage.update_test_attempt(attempt_id, {"status": AttemptStatus.PROCESSING.value})
    job_id = dispatcher.score_test(attempt.id, attempt.user_id, attempt.test_id)
    return Rescore(attempt_id=attempt_id, job_id=job_id)


@router.get("/jobs/{job_id}", response_model=JobStatus, dependencies=[Depends(require_roles(ADMIN))])
def job_status(job_id: str, dispatcher=Depends(get_dispatcher), redis=Depends(get_redis)):
    if redis is None:
        raise HTTPException(503, "Job queue is not configured")
    status = dispatcher.job_status(job_id)
    if status is None:
        raise HTTPException(404, "Job not found")
    return JobStatus(**status)
