from __future__ import annotations

import asyncio

import pytest

from talentmatch.core.errors import RemoteServiceError, ValidationError
from talentmatch.services.applications import ApplicationTracker
from talentmatch.services.store import InMemoryRepository


class FakeApplicationsClient:
    def __init__(self) -> None:
        self.applications: set[tuple[str, str]] = set()
        self.apply_calls = 0
        self.delete_calls = 0
        self.release: asyncio.Event | None = None
        self.fail_with: Exception | None = None

    async def apply_to_job(self, candidate_id: str, job_id: str) -> str:
        self.apply_calls += 1
        if self.release is not None:
            await self.release.wait()
        if self.fail_with is not None:
            raise self.fail_with
        key = (candidate_id, job_id)
        if key in self.applications:
            return "already_applied"
        self.applications.add(key)
        return "applied"

    async def delete_application(self, candidate_id: str, job_id: str) -> str:
        self.delete_calls += 1
        key = (candidate_id, job_id)
        if key not in self.applications:
            return "not_found"
        self.applications.discard(key)
        return "withdrawn"


def test_apply_twice_reports_already_applied_and_keeps_one_entry() -> None:
    client = FakeApplicationsClient()
    tracker = ApplicationTracker(client)

    first = asyncio.run(tracker.apply("cand-1", "job-1"))
    second = asyncio.run(tracker.apply("cand-1", "job-1"))

    assert first.outcome == "applied"
    assert second.outcome == "already_applied"
    assert second.applied_job_ids == ["job-1"]
    assert client.applications == {("cand-1", "job-1")}


def test_already_applied_upstream_reconciles_local_cache() -> None:
    client = FakeApplicationsClient()
    client.applications.add(("cand-1", "job-1"))
    tracker = ApplicationTracker(client)

    result = asyncio.run(tracker.apply("cand-1", "job-1"))

    assert result.outcome == "already_applied"
    assert tracker.is_applied("cand-1", "job-1") is True


def test_withdraw_without_application_is_not_found() -> None:
    tracker = ApplicationTracker(FakeApplicationsClient())

    result = asyncio.run(tracker.withdraw("cand-1", "job-1"))

    assert result.outcome == "not_found"
    assert result.applied_job_ids == []


def test_withdraw_after_apply_clears_cache() -> None:
    tracker = ApplicationTracker(FakeApplicationsClient())

    asyncio.run(tracker.apply("cand-1", "job-1"))
    asyncio.run(tracker.apply("cand-1", "job-2"))
    result = asyncio.run(tracker.withdraw("cand-1", "job-1"))

    assert result.outcome == "withdrawn"
    assert result.applied_job_ids == ["job-2"]
    assert tracker.applied_job_ids("cand-1") == frozenset({"job-2"})


def test_concurrent_double_submit_makes_one_remote_call() -> None:
    client = FakeApplicationsClient()
    tracker = ApplicationTracker(client)

    async def run() -> list[str]:
        client.release = asyncio.Event()
        pending = [asyncio.create_task(tracker.apply("cand-1", "job-1")) for _ in range(3)]
        await asyncio.sleep(0)
        client.release.set()
        results = await asyncio.gather(*pending)
        return [result.outcome for result in results]

    assert asyncio.run(run()) == ["applied", "applied", "applied"]
    assert client.apply_calls == 1


def test_remote_failure_leaves_cache_untouched() -> None:
    client = FakeApplicationsClient()
    client.fail_with = RemoteServiceError("apply_to_job failed: boom", status_code=500)
    tracker = ApplicationTracker(client)

    with pytest.raises(RemoteServiceError):
        asyncio.run(tracker.apply("cand-1", "job-1"))
    assert tracker.applied_job_ids("cand-1") == frozenset()


def test_blank_ids_are_rejected_before_remote_call() -> None:
    client = FakeApplicationsClient()
    tracker = ApplicationTracker(client)

    with pytest.raises(ValidationError):
        asyncio.run(tracker.apply(" ", "job-1"))
    assert client.apply_calls == 0


def test_refresh_loads_applied_jobs_from_repository() -> None:
    repository = InMemoryRepository()
    repository.add_application("cand-1", "job-1")
    repository.add_application("cand-1", "job-2")
    repository.add_application("cand-2", "job-3")
    tracker = ApplicationTracker(FakeApplicationsClient(), repository)

    assert asyncio.run(tracker.refresh("cand-1")) == frozenset({"job-1", "job-2"})
    assert tracker.is_applied("cand-1", "job-2") is True
