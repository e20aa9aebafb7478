from __future__ import annotations

import asyncio
from typing import Any

import pytest

from talentmatch.core.errors import ValidationError
from talentmatch.schemas.jobs import JobPosting
from talentmatch.services.repository import JobUpsertRejection, RepositoryNotFoundError
from talentmatch.services.store import InMemoryRepository
from talentmatch.services.sync import JobSynchronizer, build_job_row


def _record(job_id: str, **overrides: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": job_id,
        "company_id": "co-1",
        "title": f"Role {job_id}",
        "description": "Build pipelines",
        "location": "Berlin",
        "skills_required": ["Python"],
    }
    record.update(overrides)
    return record


class FakeJobsClient:
    def __init__(self, records: list[Any]) -> None:
        self.records = records
        self.calls: list[tuple[str, int, int]] = []
        self.deleted: list[str] = []
        self.known_ids = {str(record["id"]) for record in records if isinstance(record, dict) and "id" in record}

    async def list_jobs_for_company(self, company_id: str, limit: int = 10, offset: int = 0) -> list[Any]:
        self.calls.append((company_id, limit, offset))
        return self.records[offset : offset + limit]

    async def delete_job(self, job_id: str) -> bool:
        self.deleted.append(job_id)
        return job_id in self.known_ids


def test_build_job_row_defaults_and_remote_flag() -> None:
    row = build_job_row({"id": 7, "company_id": "co-1", "title": "null", "location": "Fully remote"})

    assert row.id == "7"
    assert row.title == "Job Position"
    assert row.description == "No description provided"
    assert row.remote_option is True


def test_build_job_row_rejects_foreign_company() -> None:
    with pytest.raises(ValidationError):
        build_job_row(_record("job-1", company_id="co-2"), company_id="co-1")


def test_sync_is_idempotent() -> None:
    repository = InMemoryRepository()
    synchronizer = JobSynchronizer(repository)
    records = [_record("job-1"), _record("job-2")]

    first = asyncio.run(synchronizer.sync("co-1", records))
    snapshot = {job_id: job.model_dump(exclude={"updated_at"}) for job_id, job in repository.jobs.items()}
    second = asyncio.run(synchronizer.sync("co-1", records))

    assert first.upserted == ["job-1", "job-2"]
    assert second.upserted == ["job-1", "job-2"]
    assert {job_id: job.model_dump(exclude={"updated_at"}) for job_id, job in repository.jobs.items()} == snapshot
    assert second.warning is None


def test_malformed_row_is_reported_and_others_are_kept() -> None:
    repository = InMemoryRepository()
    records = [_record("job-1"), {"title": "no id"}, "not a record", _record("job-4")]

    result = asyncio.run(JobSynchronizer(repository).sync("co-1", records))

    assert result.upserted == ["job-1", "job-4"]
    assert [failure.index for failure in result.failures] == [1, 2]
    assert sorted(repository.jobs) == ["job-1", "job-4"]
    warning = result.warning
    assert warning is not None
    assert warning.failed == 2


def test_repository_rejection_maps_back_to_original_index() -> None:
    class RejectingRepository(InMemoryRepository):
        async def upsert_jobs(self, company_id: str, rows: list[JobPosting]) -> list[JobUpsertRejection]:
            kept = [row for row in rows if row.id != "job-3"]
            await super().upsert_jobs(company_id, kept)
            return [
                JobUpsertRejection(index=position, job_id=row.id, reason="value too long")
                for position, row in enumerate(rows)
                if row.id == "job-3"
            ]

    repository = RejectingRepository()
    records = [_record("job-1"), "junk", _record("job-3"), _record("job-4")]

    result = asyncio.run(JobSynchronizer(repository).sync("co-1", records))

    assert result.upserted == ["job-1", "job-4"]
    assert [(failure.index, failure.job_id) for failure in result.failures] == [(1, None), (2, "job-3")]
    assert "job-3" not in repository.jobs


def test_job_owned_by_other_company_is_not_overwritten() -> None:
    repository = InMemoryRepository()
    repository.jobs["job-1"] = JobPosting(id="job-1", company_id="co-2", title="Theirs", description="d")

    result = asyncio.run(JobSynchronizer(repository).sync("co-1", [_record("job-1")]))

    assert result.upserted == []
    assert result.failures[0].reason == "job belongs to another company"
    assert repository.jobs["job-1"].title == "Theirs"


def test_refresh_company_pages_until_short_page() -> None:
    repository = InMemoryRepository()
    client = FakeJobsClient([_record(f"job-{index}") for index in range(5)])

    result = asyncio.run(JobSynchronizer(repository).refresh_company(client, "co-1", page_size=2))

    assert client.calls == [("co-1", 2, 0), ("co-1", 2, 2), ("co-1", 2, 4)]
    assert result.received == 5
    assert len(repository.jobs) == 5


def test_concurrent_syncs_of_one_company_both_complete() -> None:
    repository = InMemoryRepository()
    synchronizer = JobSynchronizer(repository)

    async def run() -> None:
        await asyncio.gather(
            synchronizer.sync("co-1", [_record("job-1", title="First")]),
            synchronizer.sync("co-1", [_record("job-1", title="Second")]),
        )

    asyncio.run(run())
    assert repository.jobs["job-1"].title == "Second"


def test_delete_job_removes_upstream_and_mirror() -> None:
    repository = InMemoryRepository()
    client = FakeJobsClient([_record("job-1")])
    synchronizer = JobSynchronizer(repository)
    asyncio.run(synchronizer.sync("co-1", client.records))

    asyncio.run(synchronizer.delete_job(client, "co-1", "job-1"))

    assert client.deleted == ["job-1"]
    assert "job-1" not in repository.jobs


def test_delete_unknown_job_raises_not_found() -> None:
    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(JobSynchronizer(InMemoryRepository()).delete_job(FakeJobsClient([]), "co-1", "job-9"))


def test_delete_job_never_synced_leaves_upstream_record_alone() -> None:
    client = FakeJobsClient([_record("job-1")])

    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(JobSynchronizer(InMemoryRepository()).delete_job(client, "co-1", "job-1"))
    assert client.deleted == []


def test_delete_job_of_other_company_is_refused_before_remote_call() -> None:
    repository = InMemoryRepository()
    repository.jobs["job-1"] = JobPosting(id="job-1", company_id="co-2", title="Theirs", description="d")
    client = FakeJobsClient([])

    with pytest.raises(ValidationError):
        asyncio.run(JobSynchronizer(repository).delete_job(client, "co-1", "job-1"))
    assert client.deleted == []


def test_delete_job_missing_upstream_keeps_mirror_row() -> None:
    repository = InMemoryRepository()
    repository.jobs["job-1"] = JobPosting(id="job-1", company_id="co-1", title="Role", description="d")
    client = FakeJobsClient([])

    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(JobSynchronizer(repository).delete_job(client, "co-1", "job-1"))
    assert client.deleted == ["job-1"]
    assert "job-1" in repository.jobs
