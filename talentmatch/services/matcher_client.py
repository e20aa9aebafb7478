from __future__ import annotations

import asyncio
from functools import lru_cache
import logging
import random
from typing import Any
from urllib.parse import quote

import httpx

from talentmatch.core.config import get_settings
from talentmatch.core.errors import RemoteServiceError
from talentmatch.schemas.applications import ApplyOutcome, WithdrawOutcome
from talentmatch.schemas.parsing import CandidateMatch, CVParseResponse, JobMatch, JobParseResponse

logger = logging.getLogger(__name__)


class MatcherClient:
    """Async client for the external parsing/matching service.

    Reads are retried with jittered exponential backoff; writes are sent once.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        parse_timeout_seconds: float = 120.0,
        read_retry_attempts: int = 3,
        read_retry_base_seconds: float = 0.5,
        read_retry_max_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.parse_timeout_seconds = parse_timeout_seconds
        self.read_retry_attempts = max(1, read_retry_attempts)
        self.read_retry_base_seconds = max(0.0, read_retry_base_seconds)
        self.read_retry_max_seconds = max(0.0, read_retry_max_seconds)
        self.transport = transport

    async def parse_cv(self, owner_id: str, file_name: str, content: bytes) -> CVParseResponse:
        response = await self._send(
            "POST",
            "/parse_cv/",
            timeout=self.parse_timeout_seconds,
            data={"user_id": owner_id},
            files={"file": (file_name, content)},
        )
        self._raise_for_status(response, "parse_cv")
        try:
            return CVParseResponse.from_payload(response.json())
        except ValueError as exc:
            raise RemoteServiceError(f"malformed parse_cv response: {exc}", status_code=response.status_code) from exc

    async def parse_job(self, company_id: str, file_name: str, content: bytes) -> JobParseResponse:
        response = await self._send(
            "POST",
            "/parse_job/",
            timeout=self.parse_timeout_seconds,
            data={"company_id": company_id},
            files={"file": (file_name, content)},
        )
        self._raise_for_status(response, "parse_job")
        try:
            return JobParseResponse.from_payload(response.json())
        except ValueError as exc:
            raise RemoteServiceError(f"malformed parse_job response: {exc}", status_code=response.status_code) from exc

    async def get_parsed_job(self, job_hash: str) -> JobParseResponse:
        response = await self._read("GET", "/parse_job", params={"job_hash": job_hash})
        self._raise_for_status(response, "get_parsed_job")
        try:
            return JobParseResponse.from_payload(response.json())
        except ValueError as exc:
            raise RemoteServiceError(f"malformed parse_job response: {exc}", status_code=response.status_code) from exc

    async def match_candidate_to_jobs(self, cv_hash: str, top_n: int = 10) -> list[JobMatch]:
        response = await self._read("POST", "/match_cv_to_jobs/", params={"cv_hash": cv_hash, "top_n": top_n})
        self._raise_for_status(response, "match_cv_to_jobs")
        return _parse_rows(response.json(), JobMatch.from_payload, "job match")

    async def match_job_to_candidates(self, job_hash: str, top_n: int = 10) -> list[CandidateMatch]:
        response = await self._read("POST", "/match_job_to_cvs/", params={"job_hash": job_hash, "top_n": top_n})
        self._raise_for_status(response, "match_job_to_cvs")
        return _parse_rows(response.json(), CandidateMatch.from_payload, "candidate match")

    async def list_jobs_for_company(self, company_id: str, limit: int = 10, offset: int = 0) -> list[Any]:
        response = await self._read(
            "GET",
            f"/jobs/company/{quote(company_id, safe='')}",
            params={"limit": limit, "offset": offset},
        )
        self._raise_for_status(response, "list_jobs_for_company")
        payload = response.json()
        if isinstance(payload, dict):
            payload = payload.get("jobs")
        if not isinstance(payload, list):
            raise RemoteServiceError("malformed job list response", status_code=response.status_code)
        return payload

    async def delete_job(self, job_id: str) -> bool:
        """Returns False when the service no longer knows the job."""
        response = await self._send("DELETE", f"/delete_job/{quote(job_id, safe='')}", timeout=self.timeout_seconds)
        if response.status_code == 404:
            return False
        self._raise_for_status(response, "delete_job")
        return True

    async def apply_to_job(self, candidate_id: str, job_id: str) -> ApplyOutcome:
        response = await self._send(
            "POST",
            "/applications/",
            timeout=self.timeout_seconds,
            json={"candidate_id": candidate_id, "job_id": job_id},
        )
        if response.status_code == 409:
            return "already_applied"
        if response.status_code == 400 and "already" in _error_detail(response).lower():
            return "already_applied"
        self._raise_for_status(response, "apply_to_job")
        return "applied"

    async def delete_application(self, candidate_id: str, job_id: str) -> WithdrawOutcome:
        response = await self._send(
            "DELETE",
            f"/applications/{quote(candidate_id, safe='')}/{quote(job_id, safe='')}",
            timeout=self.timeout_seconds,
        )
        if response.status_code == 404:
            return "not_found"
        self._raise_for_status(response, "delete_application")
        return "withdrawn"

    async def _read(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        delay = self.read_retry_base_seconds
        for attempt in range(1, self.read_retry_attempts + 1):
            try:
                response = await self._send(method, path, timeout=self.timeout_seconds, **kwargs)
            except RemoteServiceError as exc:
                if attempt >= self.read_retry_attempts:
                    raise
                logger.warning("matcher read failed path=%s attempt=%s error=%s", path, attempt, exc)
            else:
                if response.status_code < 500 or attempt >= self.read_retry_attempts:
                    return response
                logger.warning(
                    "matcher read failed path=%s attempt=%s status=%s",
                    path,
                    attempt,
                    response.status_code,
                )
            jitter = random.uniform(0.0, 0.5)
            await asyncio.sleep(min(delay * (1.0 + jitter), self.read_retry_max_seconds))
            delay *= 2.0
        raise AssertionError("unreachable")  # pragma: no cover

    async def _send(self, method: str, path: str, *, timeout: float, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                return await client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.TimeoutException as exc:
            raise RemoteServiceError(f"{method} {path} timed out after {timeout:g}s", timed_out=True) from exc
        except httpx.HTTPError as exc:
            raise RemoteServiceError(f"{method} {path} failed: {exc}") from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response, operation: str) -> None:
        if response.is_success:
            return
        raise RemoteServiceError(
            f"{operation} failed: {_error_detail(response)}",
            status_code=response.status_code,
        )


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or f"status {response.status_code}"
    if isinstance(payload, dict):
        detail = payload.get("detail")
        if isinstance(detail, str) and detail:
            return detail
    return f"status {response.status_code}"


def _parse_rows(payload: Any, parse: Any, label: str) -> list[Any]:
    if not isinstance(payload, list):
        raise RemoteServiceError(f"malformed {label} response")
    rows = []
    for item in payload:
        try:
            rows.append(parse(item))
        except ValueError as exc:
            logger.warning("skipping malformed %s: %s", label, exc)
    return rows


@lru_cache
def get_matcher_client() -> MatcherClient:
    settings = get_settings()
    return MatcherClient(
        settings.matcher_base_url,
        timeout_seconds=settings.matcher_timeout_seconds,
        parse_timeout_seconds=settings.matcher_parse_timeout_seconds,
        read_retry_attempts=settings.read_retry_attempts,
        read_retry_base_seconds=settings.read_retry_base_seconds,
        read_retry_max_seconds=settings.read_retry_max_seconds,
    )
