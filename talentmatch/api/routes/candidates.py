from fastapi import APIRouter, Depends, File, UploadFile

from talentmatch.api.deps import HANDLED_ERRORS, get_document_ingestor, get_profile_service, http_error
from talentmatch.schemas.candidates import BioUpdateRequest, CandidateProfile, CVIngestResult, ResolvedProfileView

router = APIRouter()


@router.post("/{owner_id}/cv", response_model=CVIngestResult)
async def upload_cv(
    owner_id: str,
    file: UploadFile = File(...),
    ingestor=Depends(get_document_ingestor),
) -> CVIngestResult:
    content = await file.read()
    try:
        return await ingestor.ingest_cv(owner_id, file.filename or "", content)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc


@router.get("/{owner_id}", response_model=CandidateProfile)
async def get_candidate_profile(owner_id: str, profiles=Depends(get_profile_service)) -> CandidateProfile:
    try:
        return await profiles.get_profile(owner_id)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc


@router.get("/{owner_id}/resolved", response_model=ResolvedProfileView)
async def get_resolved_profile(owner_id: str, profiles=Depends(get_profile_service)) -> ResolvedProfileView:
    try:
        return await profiles.get_resolved_profile(owner_id)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc


@router.patch("/{owner_id}/bio", response_model=CandidateProfile)
async def patch_bio(
    owner_id: str,
    payload: BioUpdateRequest,
    profiles=Depends(get_profile_service),
) -> CandidateProfile:
    try:
        return await profiles.update_bio(owner_id, payload.bio)
    except HANDLED_ERRORS as exc:
        raise http_error(exc) from exc
