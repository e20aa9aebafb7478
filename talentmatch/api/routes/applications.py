from fastapi import APIRouter, Depends

from talentmatch.api.deps import HANDLED_ERRORS, http_error
from talentmatch.schemas.applications import AppliedJobsOut, ApplicationRequest, ApplyResult, WithdrawResult
from talentmatch.services.applications import get_application_tracker

router = APIRouter()


@router.post("", response_model=ApplyResult)
async def apply_to_job(payload: ApplicationRequest, tracker=Depends(get_application_tracker)) -> ApplyResult:
    try:
        return await tracker.apply(payload.candidate_id, payload.job_id)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc


@router.delete("/{candidate_id}/{job_id}", response_model=WithdrawResult)
async def withdraw_application(
    candidate_id: str,
    job_id: str,
    tracker=Depends(get_application_tracker),
) -> WithdrawResult:
    try:
        return await tracker.withdraw(candidate_id, job_id)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc


@router.get("/{candidate_id}", response_model=AppliedJobsOut)
async def list_applied_jobs(candidate_id: str, tracker=Depends(get_application_tracker)) -> AppliedJobsOut:
    try:
        job_ids = await tracker.refresh(candidate_id)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc
    return AppliedJobsOut(candidate_id=candidate_id, applied_job_ids=sorted(job_ids))
