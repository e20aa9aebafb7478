from __future__ import annotations

from typing import Any
from weakref import WeakKeyDictionary

from fastapi import Depends, HTTPException, status

from talentmatch.core.errors import RemoteServiceError, ValidationError
from talentmatch.services.ingest import DocumentIngestor
from talentmatch.services.matcher_client import get_matcher_client
from talentmatch.services.profiles import ProfileService
from talentmatch.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from talentmatch.services.sync import JobSynchronizer

# One synchronizer per repository so per-company locks are shared across requests.
_synchronizers: WeakKeyDictionary[Any, JobSynchronizer] = WeakKeyDictionary()


def get_job_synchronizer(repository=Depends(get_repository)) -> JobSynchronizer:
    synchronizer = _synchronizers.get(repository)
    if synchronizer is None:
        synchronizer = JobSynchronizer(repository)
        _synchronizers[repository] = synchronizer
    return synchronizer


def get_document_ingestor(
    client=Depends(get_matcher_client),
    repository=Depends(get_repository),
) -> DocumentIngestor:
    return DocumentIngestor(client, repository)


def get_profile_service(repository=Depends(get_repository)) -> ProfileService:
    return ProfileService(repository)


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (ValidationError, RepositoryValidationError)):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, RemoteServiceError):
        code = status.HTTP_504_GATEWAY_TIMEOUT if exc.timed_out else status.HTTP_502_BAD_GATEWAY
        return HTTPException(status_code=code, detail=str(exc))
    if isinstance(exc, RepositoryUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, RepositoryNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, RepositoryConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


HANDLED_ERRORS = (
    ValidationError,
    RemoteServiceError,
    RepositoryUnavailableError,
    RepositoryNotFoundError,
    RepositoryConflictError,
    RepositoryValidationError,
)
