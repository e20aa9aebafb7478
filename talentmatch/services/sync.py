from __future__ import annotations

import asyncio
import logging
from typing import Any

from opentelemetry import trace

from talentmatch.core.errors import ValidationError
from talentmatch.schemas.jobs import ExternalJob, JobPosting, SyncResult, SyncRowFailure
from talentmatch.services.repository import RepositoryNotFoundError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DESCRIPTION_PLACEHOLDER = "No description provided"
DEFAULT_JOB_TITLE = "Job Position"


def is_remote(location: str | None) -> bool:
    return bool(location) and "remote" in location.lower()


def build_job_row(record: Any, *, company_id: str | None = None) -> JobPosting:
    """Maps one external job record onto a mirror row keyed by its external id."""
    if isinstance(record, ExternalJob):
        external = record
    else:
        try:
            external = ExternalJob.from_payload(record)
        except ValueError as exc:
            raise ValidationError(f"malformed job record: {exc}") from exc

    owner = external.company_id or company_id
    if owner is None:
        raise ValidationError(f"job {external.id} has no owning company")
    if company_id is not None and owner != company_id:
        raise ValidationError(f"job {external.id} belongs to company {owner}")

    return JobPosting(
        id=external.id,
        company_id=owner,
        title=external.title or DEFAULT_JOB_TITLE,
        description=external.description or external.job_text or DESCRIPTION_PLACEHOLDER,
        location=external.location,
        remote_option=is_remote(external.location),
        skills_required=list(external.skills_required or []),
        requirements=list(external.responsibilities or []),
        parsed_job_data=external.parsed_fields,
        job_text=external.job_text,
        job_hash=external.hash,
        status="active",
        created_at=external.created_at,
    )


class JobSynchronizer:
    """Best-effort, idempotent mirror of a company's jobs from the matching service."""

    def __init__(self, repository: Any) -> None:
        self.repository = repository
        self._locks: dict[str, asyncio.Lock] = {}

    async def sync(self, company_id: str, records: list[Any]) -> SyncResult:
        if not company_id:
            raise ValidationError("company_id is required")

        with tracer.start_as_current_span("sync.jobs") as span:
            span.set_attribute("company.id", company_id)
            span.set_attribute("sync.received", len(records))

            rows: list[JobPosting] = []
            row_indexes: list[int] = []
            failures: list[SyncRowFailure] = []
            for index, record in enumerate(records):
                try:
                    rows.append(build_job_row(record, company_id=company_id))
                except ValidationError as exc:
                    failures.append(SyncRowFailure(index=index, job_id=_record_id(record), reason=str(exc)))
                    continue
                row_indexes.append(index)

            # Last writer wins per row; one company's batches never interleave.
            async with self._lock_for(company_id):
                rejected = await self.repository.upsert_jobs(company_id, rows) if rows else []

            rejected_positions = {rejection.index for rejection in rejected}
            for rejection in rejected:
                failures.append(
                    SyncRowFailure(
                        index=row_indexes[rejection.index],
                        job_id=rejection.job_id,
                        reason=rejection.reason,
                    )
                )
            failures.sort(key=lambda failure: failure.index)
            upserted = [row.id for position, row in enumerate(rows) if position not in rejected_positions]

            result = SyncResult(company_id=company_id, received=len(records), upserted=upserted, failures=failures)
            span.set_attribute("sync.upserted", len(upserted))
            span.set_attribute("sync.failed", len(failures))
            if failures:
                logger.warning(
                    "job sync partially failed company_id=%s received=%s upserted=%s failed=%s",
                    company_id,
                    result.received,
                    len(upserted),
                    len(failures),
                )
            else:
                logger.info("job sync complete company_id=%s upserted=%s", company_id, len(upserted))
            return result

    async def refresh_company(self, client: Any, company_id: str, *, page_size: int = 50) -> SyncResult:
        if not company_id:
            raise ValidationError("company_id is required")
        page_size = max(1, page_size)
        records: list[Any] = []
        offset = 0
        while True:
            page = await client.list_jobs_for_company(company_id, limit=page_size, offset=offset)
            records.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
        return await self.sync(company_id, records)

    async def delete_job(self, client: Any, company_id: str, job_id: str) -> None:
        """Deletes upstream first, then the mirror row; raises unless both deletes succeed.

        A job with no mirror row is refused before anything is deleted upstream.
        """
        if not company_id or not job_id:
            raise ValidationError("company_id and job_id are required")

        with tracer.start_as_current_span("sync.delete_job") as span:
            span.set_attribute("company.id", company_id)
            span.set_attribute("job.id", job_id)
            stored = await self.repository.get_job(job_id)
            if stored is None:
                raise RepositoryNotFoundError("job not found in mirror")
            if stored.company_id != company_id:
                raise ValidationError(f"job {job_id} belongs to another company")

            if not await client.delete_job(job_id):
                raise RepositoryNotFoundError("job not found upstream")
            async with self._lock_for(company_id):
                deleted_locally = await self.repository.delete_job(company_id, job_id)
            if not deleted_locally:
                logger.warning("job deleted upstream but missing locally company_id=%s job_id=%s", company_id, job_id)
                raise RepositoryNotFoundError("job not found in mirror")
            logger.info("job deleted company_id=%s job_id=%s", company_id, job_id)

    def _lock_for(self, company_id: str) -> asyncio.Lock:
        lock = self._locks.get(company_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[company_id] = lock
        return lock


def _record_id(record: Any) -> str | None:
    if isinstance(record, dict):
        value = record.get("id") or record.get("job_id")
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return str(value)
    return None
