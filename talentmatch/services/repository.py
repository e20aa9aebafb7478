from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
import json
import logging
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from talentmatch.core.config import get_settings
from talentmatch.schemas.candidates import AccountProfile, CandidateProfile
from talentmatch.schemas.jobs import JobPosting
from talentmatch.services.normalize import json_dict
from talentmatch.services.subscriptions import ChangeEvent

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write collides with an existing row."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


@dataclass(slots=True)
class JobUpsertRejection:
    index: int
    job_id: str
    reason: str


CANDIDATE_PARSE_COLUMNS = (
    "address",
    "email_from_cv",
    "phone_number",
    "github_url",
    "linkedin_url",
    "portfolio_url",
    "skills",
    "education",
    "work_experience",
    "certifications",
    "experience_years",
    "cv_content_hash",
    "cv_hash",
    "cv_id",
    "cv_file_name",
    "cv_file_type",
    "parsed_cv_data",
    "cv_embeddings",
)
_CANDIDATE_JSON_COLUMNS = {"education", "work_experience", "parsed_cv_data", "cv_embeddings"}

JOB_COLUMNS = (
    "id",
    "company_id",
    "title",
    "description",
    "location",
    "remote_option",
    "skills_required",
    "requirements",
    "parsed_job_data",
    "job_text",
    "job_hash",
    "job_embeddings",
    "status",
)
_JOB_JSON_COLUMNS = {"parsed_job_data", "job_embeddings"}


JOB_STATUSES = ("active", "inactive")


def validate_job_listing(limit: int, offset: int, status: str | None) -> None:
    if limit < 1:
        raise RepositoryValidationError("limit must be a positive integer")
    if offset < 0:
        raise RepositoryValidationError("offset must be a non-negative integer")
    if status is not None and status not in JOB_STATUSES:
        raise RepositoryValidationError("status must be one of: active, inactive")


def _placeholders(columns: tuple[str, ...], json_columns: set[str], *, start: int = 1) -> str:
    return ", ".join(
        f"${index}::jsonb" if column in json_columns else f"${index}"
        for index, column in enumerate(columns, start=start)
    )


_UPSERT_CANDIDATE_SQL = f"""
insert into candidates (id, {", ".join(CANDIDATE_PARSE_COLUMNS)}, updated_at)
values ($1, {_placeholders(CANDIDATE_PARSE_COLUMNS, _CANDIDATE_JSON_COLUMNS, start=2)}, now())
on conflict (id) do update set
  {", ".join(f"{column} = excluded.{column}" for column in CANDIDATE_PARSE_COLUMNS)},
  updated_at = now()
returning *
"""

_UPSERT_JOB_SQL = f"""
insert into jobs ({", ".join(JOB_COLUMNS)}, updated_at)
values ({_placeholders(JOB_COLUMNS, _JOB_JSON_COLUMNS)}, now())
on conflict (id) do update set
  {", ".join(f"{column} = excluded.{column}" for column in JOB_COLUMNS if column not in {"id", "company_id"})},
  updated_at = now()
where jobs.company_id = excluded.company_id
returning id
"""


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float = 15.0,
        change_channel: str = "talentmatch_changes",
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self.change_channel = change_channel
        self._pool: asyncpg.Pool | None = None
        self._listen_conn: asyncpg.Connection | None = None
        self._listen_lock = asyncio.Lock()
        self._listeners: dict[str, list[ChangeCallback]] = {}

    async def close(self) -> None:
        if self._listen_conn is not None and self._pool is not None:
            await self._pool.release(self._listen_conn)
            self._listen_conn = None
        self._listeners.clear()
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get_candidate(self, owner_id: str) -> CandidateProfile | None:
        pool = await self._get_pool()
        row = await pool.fetchrow("select * from candidates where id = $1", owner_id)
        return self._candidate_row_to_model(row) if row else None

    async def find_candidate_by_hash(self, owner_id: str, content_hash: str) -> CandidateProfile | None:
        """Looks up by the sha256 of the uploaded bytes, not the service's ``cv_hash``."""
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select *
            from candidates
            where id = $1
              and cv_content_hash = $2
              and parsed_cv_data is not null
            """,
            owner_id,
            content_hash,
        )
        return self._candidate_row_to_model(row) if row else None

    async def get_account(self, owner_id: str) -> AccountProfile | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select id, email, first_name, last_name, location, user_type, company_name
            from profiles
            where id = $1
            """,
            owner_id,
        )
        return AccountProfile(**dict(row)) if row else None

    async def upsert_candidate_parse(self, profile: CandidateProfile) -> CandidateProfile:
        """Writes every parse-derived column in one statement; ``bio`` is never part of it."""
        pool = await self._get_pool()
        values = profile.model_dump(mode="json", include=set(CANDIDATE_PARSE_COLUMNS))
        params = [
            json.dumps(values[column]) if column in _CANDIDATE_JSON_COLUMNS and values[column] is not None else values[column]
            for column in CANDIDATE_PARSE_COLUMNS
        ]
        try:
            row = await pool.fetchrow(_UPSERT_CANDIDATE_SQL, profile.id, *params)
        except (asyncpg.PostgresError, asyncpg.DataError) as exc:
            raise RepositoryConflictError(f"candidate upsert rejected: {exc}") from exc
        return self._candidate_row_to_model(row)

    async def update_candidate_bio(self, owner_id: str, bio: str | None) -> CandidateProfile:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            insert into candidates (id, bio, updated_at)
            values ($1, $2, now())
            on conflict (id) do update set
              bio = excluded.bio,
              updated_at = now()
            returning *
            """,
            owner_id,
            bio,
        )
        return self._candidate_row_to_model(row)

    async def get_job(self, job_id: str) -> JobPosting | None:
        pool = await self._get_pool()
        row = await pool.fetchrow("select * from jobs where id = $1", job_id)
        return self._job_row_to_model(row) if row else None

    async def list_company_jobs(
        self,
        company_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        status: str | None = None,
    ) -> list[JobPosting]:
        validate_job_listing(limit, offset, status)
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select *
            from jobs
            where company_id = $1
              and ($2::text is null or status = $2)
            order by created_at desc, id
            limit $3
            offset $4
            """,
            company_id,
            status,
            limit,
            offset,
        )
        return [self._job_row_to_model(row) for row in rows]

    async def upsert_jobs(self, company_id: str, rows: list[JobPosting]) -> list[JobUpsertRejection]:
        """Upserts a batch keyed by external id; a rejected row never rolls back the others."""
        pool = await self._get_pool()
        rejected: list[JobUpsertRejection] = []
        async with pool.acquire() as conn:
            async with conn.transaction():
                # Serializes concurrent syncs of one company so a batch is never torn.
                await conn.execute("select pg_advisory_xact_lock(hashtext($1))", company_id)
                for index, row in enumerate(rows):
                    if row.company_id != company_id:
                        rejected.append(
                            JobUpsertRejection(index=index, job_id=row.id, reason="job belongs to another company")
                        )
                        continue
                    try:
                        async with conn.transaction():
                            written = await conn.fetchval(_UPSERT_JOB_SQL, *self._job_params(row))
                    except (asyncpg.PostgresError, asyncpg.DataError) as exc:
                        rejected.append(JobUpsertRejection(index=index, job_id=row.id, reason=str(exc)))
                        continue
                    if written is None:
                        rejected.append(
                            JobUpsertRejection(index=index, job_id=row.id, reason="job belongs to another company")
                        )
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
        pool = await self._get_pool()
        deleted = await pool.fetchval(
            "delete from jobs where id = $1 and company_id = $2 returning id",
            job_id,
            company_id,
        )
        return deleted is not None

    async def list_applied_job_ids(self, candidate_id: str) -> list[str]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            "select job_id from applications where candidate_id = $1 order by applied_at",
            candidate_id,
        )
        return [str(row["job_id"]) for row in rows]

    async def listen(self, table: str, callback: ChangeCallback) -> None:
        async with self._listen_lock:
            self._listeners.setdefault(table, []).append(callback)
            if self._listen_conn is not None:
                return
            pool = await self._get_pool()
            conn = await pool.acquire()
            try:
                await conn.add_listener(self.change_channel, self._dispatch_notification)
            except Exception:
                await pool.release(conn)
                self._listeners[table].remove(callback)
                raise
            self._listen_conn = conn

    async def unlisten(self, table: str, callback: ChangeCallback) -> None:
        async with self._listen_lock:
            callbacks = self._listeners.get(table, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._listeners.pop(table, None)
            if self._listeners or self._listen_conn is None:
                return
            conn = self._listen_conn
            self._listen_conn = None
            await conn.remove_listener(self.change_channel, self._dispatch_notification)
            if self._pool is not None:
                await self._pool.release(conn)

    def listener_count(self) -> int:
        return sum(len(callbacks) for callbacks in self._listeners.values())

    def _dispatch_notification(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        try:
            event = ChangeEvent.from_notification(payload)
        except ValueError:
            logger.warning("ignoring malformed change notification channel=%s payload=%s", channel, payload)
            return
        for callback in list(self._listeners.get(event.table, [])):
            callback(event)

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("TM_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _job_params(row: JobPosting) -> list[Any]:
        values = row.model_dump(mode="json", include=set(JOB_COLUMNS))
        return [
            json.dumps(values[column]) if column in _JOB_JSON_COLUMNS and values[column] is not None else values[column]
            for column in JOB_COLUMNS
        ]

    @staticmethod
    def _candidate_row_to_model(row: asyncpg.Record) -> CandidateProfile:
        data = dict(row)
        for column in _CANDIDATE_JSON_COLUMNS:
            value = data.get(column)
            if isinstance(value, str):
                data[column] = json.loads(value)
        return CandidateProfile.model_validate(data)

    @staticmethod
    def _job_row_to_model(row: asyncpg.Record) -> JobPosting:
        data = dict(row)
        data["parsed_job_data"] = json_dict(data.get("parsed_job_data"))
        embeddings = data.get("job_embeddings")
        if isinstance(embeddings, str):
            data["job_embeddings"] = json.loads(embeddings)
        data["skills_required"] = list(data.get("skills_required") or [])
        data["requirements"] = list(data.get("requirements") or [])
        data["remote_option"] = bool(data.get("remote_option"))
        data["status"] = data.get("status") or "active"
        return JobPosting.model_validate(data)


@lru_cache
def get_repository() -> Any:
    settings = get_settings()
    if settings.storage_backend == "memory":
        from talentmatch.services.store import InMemoryRepository

        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
        change_channel=settings.change_channel,
    )
