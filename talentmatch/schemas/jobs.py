from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from talentmatch.core.errors import SyncPartialFailure
from talentmatch.schemas.parsing import ParsedJob
from talentmatch.services.normalize import json_dict, optional_datetime, optional_text, text_list

JobStatus = Literal["active", "inactive"]


class ExternalJob(BaseModel):
    """A job record as listed by the matching service, normalized."""

    id: str
    company_id: str | None = None
    title: str | None = None
    description: str | None = None
    location: str | None = None
    skills_required: list[str] | None = None
    responsibilities: list[str] | None = None
    parsed_fields: dict[str, Any] = Field(default_factory=dict)
    job_text: str | None = None
    hash: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> ExternalJob:
        if not isinstance(payload, dict):
            raise ValueError("job record is not an object")
        job_id = optional_text(payload.get("id")) or optional_text(payload.get("job_id"))
        if job_id is None:
            raise ValueError("job record has no id")

        parsed_fields = json_dict(payload.get("parsed_fields") or payload.get("parsed_job"))
        parsed = ParsedJob.from_payload(parsed_fields)
        skills = text_list(payload.get("skills_required"))
        if skills is None:
            skills = parsed.required_skills
        responsibilities = text_list(payload.get("requirements"))
        if responsibilities is None:
            responsibilities = parsed.responsibilities
        return cls(
            id=job_id,
            company_id=optional_text(payload.get("company_id")),
            title=optional_text(payload.get("title")) or parsed.title,
            description=optional_text(payload.get("description")) or parsed.description,
            location=optional_text(payload.get("location")) or parsed.location,
            skills_required=skills,
            responsibilities=responsibilities,
            parsed_fields=parsed_fields,
            job_text=optional_text(payload.get("job_text")),
            hash=optional_text(payload.get("hash")) or optional_text(payload.get("job_hash")),
            created_at=optional_datetime(payload.get("created_at")),
        )


class JobPosting(BaseModel):
    id: str
    company_id: str
    title: str
    description: str
    location: str | None = None
    remote_option: bool = False
    skills_required: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    parsed_job_data: dict[str, Any] = Field(default_factory=dict)
    job_text: str | None = None
    job_hash: str | None = None
    job_embeddings: dict[str, list[float]] | None = None
    status: JobStatus = "active"
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SyncRowFailure(BaseModel):
    index: int
    job_id: str | None = None
    reason: str


class SyncResult(BaseModel):
    company_id: str
    received: int
    upserted: list[str] = Field(default_factory=list)
    failures: list[SyncRowFailure] = Field(default_factory=list)

    @property
    def warning(self) -> SyncPartialFailure | None:
        if not self.failures:
            return None
        return SyncPartialFailure(
            failed=len(self.failures),
            failures=[failure.model_dump() for failure in self.failures],
        )


class SyncResultOut(BaseModel):
    company_id: str
    received: int
    upserted: list[str]
    failures: list[SyncRowFailure]
    warnings: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: SyncResult) -> SyncResultOut:
        warning = result.warning
        return cls(
            company_id=result.company_id,
            received=result.received,
            upserted=result.upserted,
            failures=result.failures,
            warnings=[warning.as_dict()] if warning is not None else [],
        )


class JobIngestResult(BaseModel):
    company_id: str
    job_id: str
    hash: str
    is_duplicate: bool
    parsed: ParsedJob
    embedding_dimensions: dict[str, int] = Field(default_factory=dict)
    job: JobPosting | None = None
    warnings: list[dict[str, Any]] = Field(default_factory=list)


class JobDetails(BaseModel):
    """Mirror row plus the service's full parse of the posting."""

    job: JobPosting
    hash: str
    parsed: ParsedJob
    job_text: str | None = None
    embedding_dimensions: dict[str, int] = Field(default_factory=dict)


class JobSyncRequest(BaseModel):
    page_size: int = Field(default=50, ge=1, le=200)
