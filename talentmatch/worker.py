from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

from opentelemetry import trace

from talentmatch.core.config import Settings, get_settings
from talentmatch.core.errors import ReconciliationError
from talentmatch.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from talentmatch.schemas.jobs import SyncResult
from talentmatch.services.matcher_client import get_matcher_client
from talentmatch.services.repository import RepositoryError, get_repository
from talentmatch.services.sync import JobSynchronizer

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def run_sync_cycle(
    synchronizer: JobSynchronizer,
    client: Any,
    company_ids: list[str],
    *,
    page_size: int = 50,
) -> tuple[dict[str, SyncResult], list[str]]:
    """Refreshes every company once; returns the results and the ids that failed outright."""
    results: dict[str, SyncResult] = {}
    failed: list[str] = []
    with tracer.start_as_current_span("worker.sync_cycle") as span:
        span.set_attribute("worker.companies", len(company_ids))
        for company_id in company_ids:
            try:
                result = await synchronizer.refresh_company(client, company_id, page_size=page_size)
            except (ReconciliationError, RepositoryError) as exc:
                logger.warning("company sync failed company_id=%s error=%s", company_id, exc)
                failed.append(company_id)
                continue
            results[company_id] = result
            warning = result.warning
            if warning is not None:
                logger.warning("company sync warning company_id=%s detail=%s", company_id, warning.as_dict())
            logger.info(
                "company synced company_id=%s received=%s upserted=%s",
                company_id,
                result.received,
                len(result.upserted),
            )
        span.set_attribute("worker.failed", len(failed))
    return results, failed


def failure_delay(backoff: float, settings: Settings, *, jitter: float = 0.0) -> float:
    """Next wait after a failed cycle.

    Grows from ``sync_retry_base_seconds`` and never exceeds the backoff cap
    or the regular sync interval.
    """
    ceiling = min(settings.max_backoff_seconds, settings.sync_interval_seconds)
    return min(backoff * (2.0 + jitter), ceiling)


async def run_worker() -> None:
    settings = get_settings()
    configure_logging(settings, "worker")
    telemetry_runtime = setup_telemetry(settings, "worker")
    repository = get_repository()
    client = get_matcher_client()
    synchronizer = JobSynchronizer(repository)
    company_ids = settings.company_ids_to_sync()
    if not company_ids:
        logger.warning("TM_SYNC_COMPANY_IDS is empty; worker has nothing to mirror")

    backoff = settings.sync_retry_base_seconds
    try:
        while True:
            _, failed = await run_sync_cycle(synchronizer, client, company_ids, page_size=settings.sync_page_size)
            if failed:
                sleep_for = failure_delay(backoff, settings, jitter=random.uniform(0.0, 0.5))
                logger.warning("sync cycle had failures companies=%s; retry in %.1fs", ",".join(failed), sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = sleep_for
                continue
            backoff = settings.sync_retry_base_seconds
            await asyncio.sleep(settings.sync_interval_seconds)
    finally:
        shutdown_telemetry(telemetry_runtime)
        await repository.close()


def main() -> None:
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
