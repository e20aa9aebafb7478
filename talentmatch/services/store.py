from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from talentmatch.schemas.candidates import AccountProfile, CandidateProfile
from talentmatch.schemas.jobs import JobPosting
from talentmatch.services.repository import (
    CANDIDATE_PARSE_COLUMNS,
    ChangeCallback,
    JobUpsertRejection,
    RepositoryConflictError,
    RepositoryNotFoundError,
    validate_job_listing,
)
from talentmatch.services.subscriptions import ChangeEvent


class InMemoryRepository:
    """Process-local store with the same surface as ``PostgresRepository``.

    Writes publish change events the way the database trigger does.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, AccountProfile] = {}
        self.candidates: dict[str, CandidateProfile] = {}
        self.jobs: dict[str, JobPosting] = {}
        self.applications: dict[tuple[str, str], dict] = {}
        self._listeners: dict[str, list[ChangeCallback]] = {}

    async def close(self) -> None:
        self._listeners.clear()

    def add_account(self, account: AccountProfile) -> None:
        self.accounts[account.id] = account

    def add_application(self, candidate_id: str, job_id: str, match_score: float | None = None) -> None:
        self.applications[(candidate_id, job_id)] = {
            "id": str(uuid4()),
            "candidate_id": candidate_id,
            "job_id": job_id,
            "match_score": match_score,
            "status": "applied",
            "applied_at": datetime.now(timezone.utc),
        }
        self._publish("applications", "INSERT", job_id, owner_id=candidate_id)

    async def get_candidate(self, owner_id: str) -> CandidateProfile | None:
        profile = self.candidates.get(owner_id)
        return profile.model_copy(deep=True) if profile else None

    async def find_candidate_by_hash(self, owner_id: str, content_hash: str) -> CandidateProfile | None:
        profile = self.candidates.get(owner_id)
        if profile is None or profile.cv_content_hash != content_hash or profile.parsed_cv_data is None:
            return None
        return profile.model_copy(deep=True)

    async def get_account(self, owner_id: str) -> AccountProfile | None:
        return self.accounts.get(owner_id)

    async def upsert_candidate_parse(self, profile: CandidateProfile) -> CandidateProfile:
        now = datetime.now(timezone.utc)
        existing = self.candidates.get(profile.id)
        parsed_values = {column: getattr(profile, column) for column in CANDIDATE_PARSE_COLUMNS}
        if existing is None:
            stored = CandidateProfile(id=profile.id, created_at=now, updated_at=now, **parsed_values)
            operation = "INSERT"
        else:
            stored = existing.model_copy(update={**parsed_values, "updated_at": now}, deep=True)
            operation = "UPDATE"
        self.candidates[profile.id] = stored
        self._publish("candidates", operation, profile.id, owner_id=profile.id)
        return stored.model_copy(deep=True)

    async def update_candidate_bio(self, owner_id: str, bio: str | None) -> CandidateProfile:
        now = datetime.now(timezone.utc)
        existing = self.candidates.get(owner_id)
        if existing is None:
            stored = CandidateProfile(id=owner_id, bio=bio, created_at=now, updated_at=now)
            operation = "INSERT"
        else:
            stored = existing.model_copy(update={"bio": bio, "updated_at": now})
            operation = "UPDATE"
        self.candidates[owner_id] = stored
        self._publish("candidates", operation, owner_id, owner_id=owner_id)
        return stored.model_copy(deep=True)

    async def get_job(self, job_id: str) -> JobPosting | None:
        job = self.jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def list_company_jobs(
        self,
        company_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        status: str | None = None,
    ) -> list[JobPosting]:
        validate_job_listing(limit, offset, status)
        rows = [
            job
            for job in self.jobs.values()
            if job.company_id == company_id and (status is None or job.status == status)
        ]
        rows.sort(key=lambda job: job.id)
        return [job.model_copy(deep=True) for job in rows[offset : offset + limit]]

    async def upsert_jobs(self, company_id: str, rows: list[JobPosting]) -> list[JobUpsertRejection]:
        rejected: list[JobUpsertRejection] = []
        for index, row in enumerate(rows):
            reason = self._reject_reason(company_id, row)
            if reason is not None:
                rejected.append(JobUpsertRejection(index=index, job_id=row.id, reason=reason))
                continue
            now = datetime.now(timezone.utc)
            existing = self.jobs.get(row.id)
            created_at = existing.created_at if existing else (row.created_at or now)
            self.jobs[row.id] = row.model_copy(update={"created_at": created_at, "updated_at": now}, deep=True)
            self._publish("jobs", "UPDATE" if existing else "INSERT", row.id, owner_id=row.company_id)
        return rejected

    async def upsert_job(self, row: JobPosting) -> JobPosting:
        rejected = await self.upsert_jobs(row.company_id, [row])
        if rejected:
            raise RepositoryConflictError(rejected[0].reason)
        stored = await self.get_job(row.id)
        if stored is None:
            raise RepositoryNotFoundError("job not found")
        return stored

    async def delete_job(self, company_id: str, job_id: str) -> bool:
        job = self.jobs.get(job_id)
        if job is None or job.company_id != company_id:
            return False
        del self.jobs[job_id]
        for key in [key for key in self.applications if key[1] == job_id]:
            del self.applications[key]
        self._publish("jobs", "DELETE", job_id, owner_id=company_id)
        return True

    async def list_applied_job_ids(self, candidate_id: str) -> list[str]:
        rows = [row for (owner, _), row in self.applications.items() if owner == candidate_id]
        rows.sort(key=lambda row: row["applied_at"])
        return [row["job_id"] for row in rows]

    async def listen(self, table: str, callback: ChangeCallback) -> None:
        self._listeners.setdefault(table, []).append(callback)

    async def unlisten(self, table: str, callback: ChangeCallback) -> None:
        callbacks = self._listeners.get(table, [])
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            self._listeners.pop(table, None)

    def listener_count(self) -> int:
        return sum(len(callbacks) for callbacks in self._listeners.values())

    def _reject_reason(self, company_id: str, row: JobPosting) -> str | None:
        if row.company_id != company_id:
            return "job belongs to another company"
        existing = self.jobs.get(row.id)
        if existing is not None and existing.company_id != row.company_id:
            return "job belongs to another company"
        return None

    def _publish(self, table: str, operation: str, entity_id: str, *, owner_id: str | None) -> None:
        event = ChangeEvent(
            table=table,
            operation=operation,
            entity_id=entity_id,
            owner_id=owner_id,
            payload={"table": table, "operation": operation, "id": entity_id, "owner_id": owner_id},
        )
        for callback in list(self._listeners.get(table, [])):
            callback(event)
