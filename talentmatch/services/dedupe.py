from __future__ import annotations

from dataclasses import dataclass
import hashlib
import logging
from typing import Any, Literal

from talentmatch.schemas.candidates import CandidateProfile
from talentmatch.schemas.parsing import CVParseResponse, ParsedCV
from talentmatch.services.repository import RepositoryError

logger = logging.getLogger(__name__)

DocumentClassification = Literal["new_document", "duplicate_document"]


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def classify_document(*, seen_locally: bool, upstream_duplicate: bool = False) -> DocumentClassification:
    # The service's own duplicate signal is trusted verbatim.
    if seen_locally or upstream_duplicate:
        return "duplicate_document"
    return "new_document"


@dataclass(slots=True)
class DedupDecision:
    content_hash: str
    classification: DocumentClassification
    stored: CandidateProfile | None = None
    lookup_error: str | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.classification == "duplicate_document"


class DedupGate:
    """Decides whether an owner's upload was already parsed, before parsing it again."""

    def __init__(self, repository: Any) -> None:
        self.repository = repository

    async def check(self, owner_id: str, document_hash: str) -> DedupDecision:
        try:
            stored = await self.repository.find_candidate_by_hash(owner_id, document_hash)
        except RepositoryError as exc:
            logger.warning("dedup lookup unavailable owner_id=%s hash=%s error=%s", owner_id, document_hash, exc)
            return DedupDecision(
                content_hash=document_hash,
                classification="new_document",
                lookup_error=str(exc),
            )
        return DedupDecision(
            content_hash=document_hash,
            classification=classify_document(seen_locally=stored is not None),
            stored=stored,
        )

    @staticmethod
    def stored_response(decision: DedupDecision) -> CVParseResponse:
        """Rebuilds the earlier parse result from the mirror; parsing is not re-run."""
        stored = decision.stored
        if stored is None or stored.parsed_cv_data is None:
            raise ValueError("decision carries no stored parse result")
        return CVParseResponse(
            document_id=stored.cv_id,
            hash=stored.cv_hash or decision.content_hash,
            is_duplicate=True,
            parsed=ParsedCV.from_payload(stored.parsed_cv_data),
            raw=stored.parsed_cv_data,
            embeddings=stored.cv_embeddings or {},
        )
