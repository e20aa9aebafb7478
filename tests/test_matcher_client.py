from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from talentmatch.core.errors import RemoteServiceError
from talentmatch.services.matcher_client import MatcherClient


def _client(handler, **overrides: object) -> MatcherClient:
    options: dict[str, object] = {
        "timeout_seconds": 2.0,
        "parse_timeout_seconds": 5.0,
        "read_retry_attempts": 3,
        "read_retry_base_seconds": 0.0,
        "read_retry_max_seconds": 0.0,
    }
    options.update(overrides)
    return MatcherClient("http://matcher.test/", transport=httpx.MockTransport(handler), **options)


def test_parse_cv_posts_multipart_and_normalizes_response() -> None:
    seen: dict[str, object] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(
            200,
            json={
                "cv_id": "doc-1",
                "hash": "abc",
                "is_duplicate": False,
                "parsed_cv": {"personalInfo": {"name": "Jane", "email": "null"}},
                "embeddings": {"skills": [0.1, 0.2]},
            },
            request=request,
        )

    response = asyncio.run(_client(handler).parse_cv("cand-1", "cv.pdf", b"%PDF"))

    assert seen["url"] == "http://matcher.test/parse_cv/"
    assert b'name="user_id"' in seen["body"]
    assert b'filename="cv.pdf"' in seen["body"]
    assert response.document_id == "doc-1"
    assert response.parsed.name == "Jane"
    assert response.parsed.email is None


def test_parse_cv_is_not_retried_on_server_error() -> None:
    calls: list[int] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(500, json={"detail": "parser crashed"}, request=request)

    with pytest.raises(RemoteServiceError) as excinfo:
        asyncio.run(_client(handler).parse_cv("cand-1", "cv.pdf", b"%PDF"))

    assert len(calls) == 1
    assert excinfo.value.status_code == 500
    assert "parser crashed" in str(excinfo.value)


def test_reads_retry_server_errors_then_succeed() -> None:
    calls: list[int] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) < 3:
            return httpx.Response(503, request=request)
        return httpx.Response(
            200,
            json=[{"job_id": "job-1", "job_title": "Engineer", "combined_score": 0.9, "skills_score": 0.8}],
            request=request,
        )

    matches = asyncio.run(_client(handler).match_candidate_to_jobs("abc", top_n=5))

    assert len(calls) == 3
    assert matches[0].job_id == "job-1"
    assert matches[0].combined_score == 0.9
    assert matches[0].scores["skills_score"] == 0.8


def test_timeout_surfaces_as_timed_out_remote_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(RemoteServiceError) as excinfo:
        asyncio.run(_client(handler, read_retry_attempts=1).match_job_to_candidates("job-hash"))

    assert excinfo.value.timed_out is True


def test_list_jobs_accepts_wrapped_and_bare_lists() -> None:
    async def wrapped(request: httpx.Request) -> httpx.Response:
        assert request.url.params["limit"] == "2"
        return httpx.Response(200, json={"jobs": [{"id": "job-1"}]}, request=request)

    async def bare(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"id": "job-2"}], request=request)

    assert asyncio.run(_client(wrapped).list_jobs_for_company("co-1", limit=2)) == [{"id": "job-1"}]
    assert asyncio.run(_client(bare).list_jobs_for_company("co-1")) == [{"id": "job-2"}]


def test_match_candidates_skips_malformed_rows() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[{"cv_id": "cand-1", "candidate": {"name": "Jane"}, "combined_score": 0.7}, {"no": "id"}],
            request=request,
        )

    matches = asyncio.run(_client(handler).match_job_to_candidates("job-hash"))

    assert [match.candidate_id for match in matches] == ["cand-1"]
    assert matches[0].name == "Jane"


def test_apply_conflict_maps_to_already_applied() -> None:
    async def conflict(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {"candidate_id": "cand-1", "job_id": "job-1"}
        return httpx.Response(409, json={"detail": "duplicate"}, request=request)

    async def bad_request(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"detail": "Candidate already applied"}, request=request)

    assert asyncio.run(_client(conflict).apply_to_job("cand-1", "job-1")) == "already_applied"
    assert asyncio.run(_client(bad_request).apply_to_job("cand-1", "job-1")) == "already_applied"


def test_delete_application_not_found_is_an_outcome() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        assert request.url.path == "/applications/cand-1/job-1"
        return httpx.Response(404, request=request)

    assert asyncio.run(_client(handler).delete_application("cand-1", "job-1")) == "not_found"


def test_delete_job_reports_missing_upstream_job() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, request=request)

    assert asyncio.run(_client(handler).delete_job("job-1")) is False


def test_transport_error_is_wrapped() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(RemoteServiceError) as excinfo:
        asyncio.run(_client(handler).delete_job("job-1"))

    assert excinfo.value.timed_out is False


def test_get_parsed_job_reads_by_hash() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.params["job_hash"] == "job-hash"
        return httpx.Response(
            200,
            json={"job_id": "job-1", "hash": "job-hash", "parsed_job": {"jobTitle": "Engineer"}},
            request=request,
        )

    parsed = asyncio.run(_client(handler).get_parsed_job("job-hash"))

    assert parsed.job_id == "job-1"
    assert parsed.parsed.title == "Engineer"
