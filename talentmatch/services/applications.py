from __future__ import annotations

import asyncio
from functools import lru_cache
import logging
from typing import Any

from opentelemetry import trace

from talentmatch.core.errors import ValidationError
from talentmatch.schemas.applications import ApplyOutcome, ApplyResult, WithdrawOutcome, WithdrawResult
from talentmatch.services.matcher_client import get_matcher_client
from talentmatch.services.repository import get_repository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ApplicationTracker:
    """Apply/withdraw against the matching service with a per-candidate applied-jobs cache.

    The cache is reconciled with the service's answer: ``already_applied``
    marks the job applied, ``not_found`` clears it.
    """

    def __init__(self, client: Any, repository: Any | None = None) -> None:
        self.client = client
        self.repository = repository
        self._applied: dict[str, set[str]] = {}
        self._in_flight: dict[tuple[str, str, str], asyncio.Task[Any]] = {}

    def applied_job_ids(self, candidate_id: str) -> frozenset[str]:
        return frozenset(self._applied.get(candidate_id, ()))

    def is_applied(self, candidate_id: str, job_id: str) -> bool:
        return job_id in self._applied.get(candidate_id, ())

    async def refresh(self, candidate_id: str) -> frozenset[str]:
        _require_ids(candidate_id=candidate_id)
        if self.repository is None:
            return self.applied_job_ids(candidate_id)
        job_ids = await self.repository.list_applied_job_ids(candidate_id)
        self._applied[candidate_id] = set(job_ids)
        return self.applied_job_ids(candidate_id)

    async def apply(self, candidate_id: str, job_id: str) -> ApplyResult:
        _require_ids(candidate_id=candidate_id, job_id=job_id)
        with tracer.start_as_current_span("applications.apply") as span:
            span.set_attribute("candidate.id", candidate_id)
            span.set_attribute("job.id", job_id)
            outcome: ApplyOutcome = await self._single_flight(
                ("apply", candidate_id, job_id),
                lambda: self.client.apply_to_job(candidate_id, job_id),
            )
            self._applied.setdefault(candidate_id, set()).add(job_id)
            span.set_attribute("applications.outcome", outcome)
            logger.info("apply candidate_id=%s job_id=%s outcome=%s", candidate_id, job_id, outcome)
            return ApplyResult(
                candidate_id=candidate_id,
                job_id=job_id,
                outcome=outcome,
                applied_job_ids=sorted(self._applied[candidate_id]),
            )

    async def withdraw(self, candidate_id: str, job_id: str) -> WithdrawResult:
        _require_ids(candidate_id=candidate_id, job_id=job_id)
        with tracer.start_as_current_span("applications.withdraw") as span:
            span.set_attribute("candidate.id", candidate_id)
            span.set_attribute("job.id", job_id)
            outcome: WithdrawOutcome = await self._single_flight(
                ("withdraw", candidate_id, job_id),
                lambda: self.client.delete_application(candidate_id, job_id),
            )
            self._applied.get(candidate_id, set()).discard(job_id)
            span.set_attribute("applications.outcome", outcome)
            logger.info("withdraw candidate_id=%s job_id=%s outcome=%s", candidate_id, job_id, outcome)
            return WithdrawResult(
                candidate_id=candidate_id,
                job_id=job_id,
                outcome=outcome,
                applied_job_ids=sorted(self._applied.get(candidate_id, set())),
            )

    async def _single_flight(self, key: tuple[str, str, str], call: Any) -> Any:
        # A second submission while the first is pending shares its remote call.
        task = self._in_flight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(call())
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: tuple[str, str, str], task: asyncio.Future[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]


def _require_ids(**values: str) -> None:
    for name, value in values.items():
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{name} is required")


@lru_cache
def get_application_tracker() -> ApplicationTracker:
    return ApplicationTracker(get_matcher_client(), get_repository())
