from fastapi import APIRouter, Body, Depends, File, Query, Response, UploadFile, status as http_status

from talentmatch.api.deps import HANDLED_ERRORS, get_document_ingestor, get_job_synchronizer, http_error
from talentmatch.schemas.jobs import JobDetails, JobIngestResult, JobPosting, JobStatus, JobSyncRequest, SyncResultOut
from talentmatch.services.matcher_client import get_matcher_client
from talentmatch.services.repository import get_repository

router = APIRouter()


@router.post("/{company_id}/jobs", response_model=JobIngestResult)
async def upload_job(
    company_id: str,
    file: UploadFile = File(...),
    ingestor=Depends(get_document_ingestor),
) -> JobIngestResult:
    content = await file.read()
    try:
        return await ingestor.ingest_job(company_id, file.filename or "", content)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc


@router.post("/{company_id}/jobs/sync", response_model=SyncResultOut)
async def sync_jobs(
    company_id: str,
    payload: JobSyncRequest | None = Body(default=None),
    synchronizer=Depends(get_job_synchronizer),
    client=Depends(get_matcher_client),
) -> SyncResultOut:
    page_size = payload.page_size if payload is not None else JobSyncRequest().page_size
    try:
        result = await synchronizer.refresh_company(client, company_id, page_size=page_size)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc
    return SyncResultOut.from_result(result)


@router.get("/{company_id}/jobs", response_model=list[JobPosting])
async def list_jobs(
    company_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    job_status: JobStatus | None = Query(default=None, alias="status"),
    repository=Depends(get_repository),
) -> list[JobPosting]:
    try:
        return await repository.list_company_jobs(company_id, limit=limit, offset=offset, status=job_status)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc


@router.delete("/{company_id}/jobs/{job_id}", status_code=http_status.HTTP_204_NO_CONTENT)
async def delete_job(
    company_id: str,
    job_id: str,
    synchronizer=Depends(get_job_synchronizer),
    client=Depends(get_matcher_client),
) -> Response:
    try:
        await synchronizer.delete_job(client, company_id, job_id)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)


@router.get("/{company_id}/jobs/{job_id}/parsed", response_model=JobDetails)
async def view_job(
    company_id: str,
    job_id: str,
    ingestor=Depends(get_document_ingestor),
) -> JobDetails:
    try:
        return await ingestor.view_job(company_id, job_id)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc
