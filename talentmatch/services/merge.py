from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from opentelemetry import trace

from talentmatch.core.errors import PersistenceWarning, ValidationError
from talentmatch.schemas.candidates import CandidateProfile
from talentmatch.schemas.jobs import JobPosting
from talentmatch.schemas.parsing import CVParseResponse, JobParseResponse
from talentmatch.services.repository import RepositoryError
from talentmatch.services.sync import DEFAULT_JOB_TITLE, DESCRIPTION_PLACEHOLDER, is_remote

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

USER_OWNED_FIELDS = frozenset({"bio"})

# ParsedCV field -> candidate column.
PARSED_CV_COLUMNS = {
    "address": "address",
    "email": "email_from_cv",
    "phone": "phone_number",
    "github_url": "github_url",
    "linkedin_url": "linkedin_url",
    "portfolio_url": "portfolio_url",
    "skills": "skills",
    "education": "education",
    "work_experience": "work_experience",
    "certifications": "certifications",
    "experience_years": "experience_years",
}
DOCUMENT_COLUMNS = (
    "cv_content_hash",
    "cv_hash",
    "cv_id",
    "cv_file_name",
    "cv_file_type",
    "parsed_cv_data",
    "cv_embeddings",
)
PARSER_OWNED_FIELDS = frozenset(PARSED_CV_COLUMNS.values()) | frozenset(DOCUMENT_COLUMNS)


def merge_candidate_profile(
    existing: CandidateProfile | None,
    response: CVParseResponse,
    *,
    owner_id: str,
    file_name: str | None = None,
    file_type: str | None = None,
    content_hash: str | None = None,
) -> CandidateProfile:
    """Replace-with-latest-parse for parser-owned fields.

    Every parser-owned column is rewritten from the new parse. A field the
    parser left out and a field it reported as a sentinel both end up ``None``.
    User-owned fields are never read from the parse.
    """
    if existing is not None and existing.id != owner_id:
        raise ValidationError("stored profile belongs to a different owner")

    base = existing or CandidateProfile(id=owner_id)
    parsed = response.parsed
    updates: dict[str, Any] = {
        column: _copy(getattr(parsed, field_name)) for field_name, column in PARSED_CV_COLUMNS.items()
    }

    updates["cv_content_hash"] = content_hash
    updates["cv_hash"] = response.hash
    updates["cv_id"] = response.document_id
    updates["parsed_cv_data"] = dict(response.raw)
    updates["cv_embeddings"] = {name: list(vector) for name, vector in response.embeddings.items()}
    if file_name is not None:
        updates["cv_file_name"] = file_name
        updates["cv_file_type"] = file_type
    return base.model_copy(update=updates, deep=True)


def merge_job_posting(
    existing: JobPosting | None,
    response: JobParseResponse,
    *,
    company_id: str,
) -> JobPosting:
    if existing is not None and existing.company_id != company_id:
        raise ValidationError("stored job belongs to a different company")

    parsed = response.parsed
    base = existing or JobPosting(
        id=response.job_id,
        company_id=company_id,
        title=DEFAULT_JOB_TITLE,
        description=DESCRIPTION_PLACEHOLDER,
    )
    # Same replace semantics as candidates; required columns fall back to their defaults.
    updates: dict[str, Any] = {
        "title": parsed.title or DEFAULT_JOB_TITLE,
        "description": parsed.description or response.job_text or DESCRIPTION_PLACEHOLDER,
        "job_text": response.job_text,
        "location": parsed.location,
        "remote_option": is_remote(parsed.location),
        "skills_required": list(parsed.required_skills or []),
        "requirements": list(parsed.responsibilities or []),
        "job_hash": response.hash,
        "parsed_job_data": dict(response.raw),
        "job_embeddings": {name: list(vector) for name, vector in response.embeddings.items()},
    }
    return base.model_copy(update=updates, deep=True)


def _copy(value: Any) -> Any:
    if isinstance(value, list):
        return list(value)
    return value


@dataclass(slots=True)
class MergeOutcome:
    stored: Any
    warning: PersistenceWarning | None = None

    @property
    def persisted(self) -> bool:
        return self.stored is not None


class ProfileMergeEngine:
    def __init__(self, repository: Any) -> None:
        self.repository = repository

    async def merge_cv(
        self,
        owner_id: str,
        response: CVParseResponse,
        *,
        file_name: str | None = None,
        file_type: str | None = None,
        content_hash: str | None = None,
    ) -> MergeOutcome:
        with tracer.start_as_current_span("merge.cv") as span:
            span.set_attribute("owner.id", owner_id)
            try:
                existing = await self.repository.get_candidate(owner_id)
                merged = merge_candidate_profile(
                    existing,
                    response,
                    owner_id=owner_id,
                    file_name=file_name,
                    file_type=file_type,
                    content_hash=content_hash,
                )
                stored = await self.repository.upsert_candidate_parse(merged)
            except (RepositoryError, ValidationError) as exc:
                logger.warning("profile merge not persisted owner_id=%s hash=%s error=%s", owner_id, response.hash, exc)
                return MergeOutcome(
                    stored=None,
                    warning=PersistenceWarning("CV parsed but the profile could not be updated", str(exc)),
                )
            logger.info("profile merged owner_id=%s hash=%s", owner_id, response.hash)
            return MergeOutcome(stored=stored)

    async def merge_job(self, company_id: str, response: JobParseResponse) -> MergeOutcome:
        with tracer.start_as_current_span("merge.job") as span:
            span.set_attribute("company.id", company_id)
            try:
                existing = await self.repository.get_job(response.job_id)
                merged = merge_job_posting(existing, response, company_id=company_id)
                stored = await self.repository.upsert_job(merged)
            except (RepositoryError, ValidationError) as exc:
                logger.warning("job merge not persisted company_id=%s job_id=%s error=%s", company_id, response.job_id, exc)
                return MergeOutcome(
                    stored=None,
                    warning=PersistenceWarning("job parsed but the posting could not be saved", str(exc)),
                )
            logger.info("job merged company_id=%s job_id=%s", company_id, response.job_id)
            return MergeOutcome(stored=stored)
