from __future__ import annotations

import logging
from pathlib import PurePath
from typing import Any

from opentelemetry import trace

from talentmatch.core.errors import ValidationError
from talentmatch.schemas.candidates import CVIngestResult
from talentmatch.schemas.jobs import JobDetails, JobIngestResult
from talentmatch.schemas.parsing import CandidateMatch, JobMatch
from talentmatch.services.dedupe import DedupGate, classify_document, content_hash
from talentmatch.services.merge import ProfileMergeEngine
from talentmatch.services.repository import RepositoryError, RepositoryNotFoundError
from talentmatch.services.resolver import resolve_profile_view

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CV_EXTENSIONS = frozenset({".pdf", ".docx"})
JOB_EXTENSIONS = frozenset({".pdf", ".docx", ".txt"})


def document_extension(file_name: str | None, allowed: frozenset[str]) -> str:
    if not file_name or not file_name.strip():
        raise ValidationError("file name is required")
    extension = PurePath(file_name.strip()).suffix.lower()
    if extension not in allowed:
        raise ValidationError(f"unsupported file type {extension or '(none)'}; expected one of {', '.join(sorted(allowed))}")
    return extension


def embedding_dimensions(embeddings: dict[str, list[float]]) -> dict[str, int]:
    return {name: len(vector) for name, vector in embeddings.items()}


class DocumentIngestor:
    """Upload path: dedup, parse remotely, merge into the mirror."""

    def __init__(self, client: Any, repository: Any) -> None:
        self.client = client
        self.repository = repository
        self.dedup = DedupGate(repository)
        self.merger = ProfileMergeEngine(repository)

    async def ingest_cv(self, owner_id: str, file_name: str, content: bytes) -> CVIngestResult:
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise ValidationError("owner_id is required")
        extension = document_extension(file_name, CV_EXTENSIONS)
        if not content:
            raise ValidationError("uploaded file is empty")

        with tracer.start_as_current_span("ingest.cv") as span:
            span.set_attribute("owner.id", owner_id)
            decision = await self.dedup.check(owner_id, content_hash(content))
            span.set_attribute("document.hash", decision.content_hash)
            warnings: list[dict[str, Any]] = []
            if decision.lookup_error is not None:
                warnings.append({"message": "duplicate lookup unavailable", "detail": decision.lookup_error})

            if decision.is_duplicate and decision.stored is not None and decision.stored.parsed_cv_data is not None:
                response = DedupGate.stored_response(decision)
                span.set_attribute("document.classification", decision.classification)
                logger.info("cv upload is a stored duplicate owner_id=%s hash=%s", owner_id, decision.content_hash)
                return CVIngestResult(
                    owner_id=owner_id,
                    document_id=response.document_id,
                    hash=response.hash,
                    is_duplicate=True,
                    parsed=response.parsed,
                    embedding_dimensions=embedding_dimensions(response.embeddings),
                    profile=decision.stored,
                    warnings=warnings,
                )

            response = await self.client.parse_cv(owner_id, file_name, content)
            classification = classify_document(seen_locally=False, upstream_duplicate=response.is_duplicate)
            span.set_attribute("document.classification", classification)

            outcome = await self.merger.merge_cv(
                owner_id,
                response,
                file_name=file_name,
                file_type=extension.lstrip("."),
                content_hash=decision.content_hash,
            )
            if outcome.warning is not None:
                warnings.append(outcome.warning.as_dict())
            logger.info(
                "cv ingested owner_id=%s hash=%s classification=%s persisted=%s",
                owner_id,
                response.hash,
                classification,
                outcome.persisted,
            )
            return CVIngestResult(
                owner_id=owner_id,
                document_id=response.document_id,
                hash=response.hash,
                is_duplicate=classification == "duplicate_document",
                parsed=response.parsed,
                embedding_dimensions=embedding_dimensions(response.embeddings),
                profile=outcome.stored,
                warnings=warnings,
            )

    async def ingest_job(self, company_id: str, file_name: str, content: bytes) -> JobIngestResult:
        if not isinstance(company_id, str) or not company_id.strip():
            raise ValidationError("company_id is required")
        document_extension(file_name, JOB_EXTENSIONS)
        if not content:
            raise ValidationError("uploaded file is empty")

        with tracer.start_as_current_span("ingest.job") as span:
            span.set_attribute("company.id", company_id)
            response = await self.client.parse_job(company_id, file_name, content)
            span.set_attribute("job.id", response.job_id)
            outcome = await self.merger.merge_job(company_id, response)
            warnings = [outcome.warning.as_dict()] if outcome.warning is not None else []
            logger.info(
                "job ingested company_id=%s job_id=%s duplicate=%s persisted=%s",
                company_id,
                response.job_id,
                response.is_duplicate,
                outcome.persisted,
            )
            return JobIngestResult(
                company_id=company_id,
                job_id=response.job_id,
                hash=response.hash,
                is_duplicate=response.is_duplicate,
                parsed=response.parsed,
                embedding_dimensions=embedding_dimensions(response.embeddings),
                job=outcome.stored,
                warnings=warnings,
            )

    async def view_job(self, company_id: str, job_id: str) -> JobDetails:
        if not company_id or not job_id:
            raise ValidationError("company_id and job_id are required")
        with tracer.start_as_current_span("ingest.view_job") as span:
            span.set_attribute("company.id", company_id)
            span.set_attribute("job.id", job_id)
            stored = await self.repository.get_job(job_id)
            if stored is None or stored.company_id != company_id:
                raise RepositoryNotFoundError("job not found")
            if stored.job_hash is None:
                raise RepositoryNotFoundError("job has no parsed document")
            response = await self.client.get_parsed_job(stored.job_hash)
            return JobDetails(
                job=stored,
                hash=response.hash,
                parsed=response.parsed,
                job_text=response.job_text or stored.job_text,
                embedding_dimensions=embedding_dimensions(response.embeddings),
            )

    async def find_jobs_for_candidate(self, cv_hash: str, top_n: int = 10) -> list[JobMatch]:
        if not cv_hash:
            raise ValidationError("cv_hash is required")
        with tracer.start_as_current_span("ingest.match_jobs"):
            return await self.client.match_candidate_to_jobs(cv_hash, top_n=top_n)

    async def find_candidates_for_job(self, job_hash: str, top_n: int = 10) -> list[CandidateMatch]:
        if not job_hash:
            raise ValidationError("job_hash is required")
        with tracer.start_as_current_span("ingest.match_candidates"):
            matches = await self.client.match_job_to_candidates(job_hash, top_n=top_n)
            return [await self._with_resolved_email(match) for match in matches]

    async def _with_resolved_email(self, match: CandidateMatch) -> CandidateMatch:
        try:
            profile = await self.repository.get_candidate(match.candidate_id)
            account = await self.repository.get_account(match.candidate_id)
        except RepositoryError as exc:
            logger.warning("candidate enrichment skipped candidate_id=%s error=%s", match.candidate_id, exc)
            return match
        if profile is None and account is None:
            return match
        view = resolve_profile_view(profile, account, owner_id=match.candidate_id)
        return match.model_copy(
            update={
                "email": view.email or match.email,
                "name": view.name or match.name,
            }
        )
