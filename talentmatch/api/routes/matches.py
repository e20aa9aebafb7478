from fastapi import APIRouter, Depends, Query

from talentmatch.api.deps import HANDLED_ERRORS, get_document_ingestor, http_error
from talentmatch.core.config import get_settings
from talentmatch.schemas.parsing import CandidateMatch, JobMatch

router = APIRouter()


@router.post("/jobs", response_model=list[JobMatch])
async def match_jobs(
    cv_hash: str = Query(min_length=1),
    top_n: int | None = Query(default=None, ge=1, le=100),
    ingestor=Depends(get_document_ingestor),
) -> list[JobMatch]:
    try:
        return await ingestor.find_jobs_for_candidate(cv_hash, top_n=top_n or get_settings().match_top_n)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc


@router.post("/candidates", response_model=list[CandidateMatch])
async def match_candidates(
    job_hash: str = Query(min_length=1),
    top_n: int | None = Query(default=None, ge=1, le=100),
    ingestor=Depends(get_document_ingestor),
) -> list[CandidateMatch]:
    try:
        return await ingestor.find_candidates_for_job(job_hash, top_n=top_n or get_settings().match_top_n)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc
