from __future__ import annotations

import asyncio
import json

import pytest

from talentmatch.schemas.candidates import CandidateProfile
from talentmatch.services.store import InMemoryRepository
from talentmatch.services.subscriptions import ChangeEvent, ChangeSubscription, subscribe


def test_change_event_from_notification() -> None:
    event = ChangeEvent.from_notification(
        json.dumps({"table": "applications", "operation": "insert", "id": 12, "owner_id": "cand-1"})
    )

    assert event.table == "applications"
    assert event.operation == "INSERT"
    assert event.entity_id == "12"
    assert event.concerns("cand-1") is True
    assert event.concerns("cand-2") is False


@pytest.mark.parametrize("raw", ["[]", '{"operation": "UPDATE"}', "not json"])
def test_change_event_rejects_malformed_payloads(raw: str) -> None:
    with pytest.raises(ValueError):
        ChangeEvent.from_notification(raw)


def test_subscribe_and_close_leave_listener_count_balanced() -> None:
    repository = InMemoryRepository()

    async def run() -> list[int]:
        counts = [repository.listener_count()]
        first = await subscribe(repository, table="candidates", entity_id="cand-1")
        second = await subscribe(repository, table="jobs", entity_id="co-1")
        counts.append(repository.listener_count())
        await first.close()
        await first.close()
        await second.close()
        counts.append(repository.listener_count())
        return counts

    assert asyncio.run(run()) == [0, 2, 0]


def test_events_are_filtered_to_the_watched_entity() -> None:
    repository = InMemoryRepository()

    async def run() -> list[str]:
        async with ChangeSubscription(repository, table="candidates", entity_id="cand-1") as subscription:
            await repository.update_candidate_bio("cand-2", "other")
            await repository.update_candidate_bio("cand-1", "mine")
            await repository.update_candidate_bio("cand-1", "mine again")
        return [event.operation async for event in subscription.events()]

    assert asyncio.run(run()) == ["INSERT", "UPDATE"]


def test_burst_of_changes_triggers_coalesced_reread() -> None:
    repository = InMemoryRepository()

    async def run() -> tuple[int, CandidateProfile | None]:
        async def reread() -> CandidateProfile | None:
            return await repository.get_candidate("cand-1")

        async with ChangeSubscription(repository, table="candidates", entity_id="cand-1", reread=reread) as subscription:
            for index in range(5):
                await repository.update_candidate_bio("cand-1", f"bio {index}")
            await subscription.wait_until_idle()
            return subscription.reread_count, subscription.latest

    reread_count, latest = asyncio.run(run())
    assert reread_count == 1
    assert latest is not None
    assert latest.bio == "bio 4"


def test_failed_reread_keeps_subscription_alive() -> None:
    repository = InMemoryRepository()
    attempts: list[int] = []

    async def run() -> tuple[bool, int]:
        async def reread() -> None:
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("transient")

        async with ChangeSubscription(repository, table="candidates", entity_id="cand-1", reread=reread) as subscription:
            await repository.update_candidate_bio("cand-1", "one")
            await subscription.wait_until_idle()
            await repository.update_candidate_bio("cand-1", "two")
            await subscription.wait_until_idle()
            return subscription.active, subscription.reread_count

    active, reread_count = asyncio.run(run())
    assert active is True
    assert len(attempts) == 2
    assert reread_count == 1


def test_closed_subscription_cannot_restart() -> None:
    repository = InMemoryRepository()

    async def run() -> None:
        subscription = await subscribe(repository, table="jobs", entity_id="co-1")
        await subscription.close()
        await subscription.start()

    with pytest.raises(RuntimeError):
        asyncio.run(run())
