from __future__ import annotations

import asyncio

import pytest

from talentmatch.schemas.candidates import CandidateProfile
from talentmatch.services.dedupe import DedupGate, classify_document, content_hash
from talentmatch.services.repository import RepositoryUnavailableError
from talentmatch.services.store import InMemoryRepository


class UnavailableRepository(InMemoryRepository):
    async def find_candidate_by_hash(self, owner_id: str, content_hash: str) -> CandidateProfile | None:
        raise RepositoryUnavailableError("database unavailable")


def test_content_hash_is_stable_sha256() -> None:
    assert content_hash(b"resume") == content_hash(b"resume")
    assert content_hash(b"resume") != content_hash(b"resume v2")
    assert len(content_hash(b"")) == 64


def test_classify_document_trusts_either_signal() -> None:
    assert classify_document(seen_locally=False) == "new_document"
    assert classify_document(seen_locally=True) == "duplicate_document"
    assert classify_document(seen_locally=False, upstream_duplicate=True) == "duplicate_document"


def test_gate_matches_only_the_same_owner_and_hash() -> None:
    repository = InMemoryRepository()
    digest = content_hash(b"cv bytes")
    repository.candidates["cand-1"] = CandidateProfile(
        id="cand-1",
        cv_content_hash=digest,
        cv_hash="service-hash",
        cv_id="doc-1",
        parsed_cv_data={"personalInfo": {"name": "Jane"}},
    )
    gate = DedupGate(repository)

    same = asyncio.run(gate.check("cand-1", digest))
    other_owner = asyncio.run(gate.check("cand-2", digest))
    other_hash = asyncio.run(gate.check("cand-1", content_hash(b"new cv")))
    service_hash = asyncio.run(gate.check("cand-1", "service-hash"))

    assert same.is_duplicate is True
    assert same.stored is not None
    assert other_owner.is_duplicate is False
    assert other_hash.is_duplicate is False
    assert service_hash.is_duplicate is False


def test_stored_response_rebuilds_previous_parse() -> None:
    repository = InMemoryRepository()
    digest = content_hash(b"cv bytes")
    repository.candidates["cand-1"] = CandidateProfile(
        id="cand-1",
        cv_content_hash=digest,
        cv_hash="service-hash",
        cv_id="doc-1",
        parsed_cv_data={"personalInfo": {"name": "Jane"}, "skills": ["Go"]},
        cv_embeddings={"skills": [0.1, 0.2, 0.3]},
    )
    decision = asyncio.run(DedupGate(repository).check("cand-1", digest))

    response = DedupGate.stored_response(decision)
    assert response.is_duplicate is True
    assert response.document_id == "doc-1"
    assert response.hash == "service-hash"
    assert response.parsed.name == "Jane"
    assert response.embeddings == {"skills": [0.1, 0.2, 0.3]}


def test_lookup_failure_is_reported_not_raised() -> None:
    decision = asyncio.run(DedupGate(UnavailableRepository()).check("cand-1", "abc"))

    assert decision.is_duplicate is False
    assert decision.lookup_error == "database unavailable"
    with pytest.raises(ValueError):
        DedupGate.stored_response(decision)
