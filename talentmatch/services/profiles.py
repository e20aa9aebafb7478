from __future__ import annotations

import logging
from typing import Any

from talentmatch.core.errors import ValidationError
from talentmatch.schemas.candidates import CandidateProfile, ResolvedProfileView
from talentmatch.services.repository import RepositoryNotFoundError
from talentmatch.services.resolver import resolve_profile_view
from talentmatch.services.subscriptions import ChangeSubscription

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, repository: Any) -> None:
        self.repository = repository

    async def get_profile(self, owner_id: str) -> CandidateProfile:
        _require_owner(owner_id)
        profile = await self.repository.get_candidate(owner_id)
        if profile is None:
            raise RepositoryNotFoundError("candidate profile not found")
        return profile

    async def get_resolved_profile(self, owner_id: str) -> ResolvedProfileView:
        _require_owner(owner_id)
        profile = await self.repository.get_candidate(owner_id)
        account = await self.repository.get_account(owner_id)
        if profile is None and account is None:
            raise RepositoryNotFoundError("candidate profile not found")
        return resolve_profile_view(profile, account, owner_id=owner_id)

    async def update_bio(self, owner_id: str, bio: str | None) -> CandidateProfile:
        """The only write path for user-owned fields."""
        _require_owner(owner_id)
        text = bio.strip() if isinstance(bio, str) else None
        profile = await self.repository.update_candidate_bio(owner_id, text or None)
        logger.info("bio updated owner_id=%s", owner_id)
        return profile

    def watch(self, owner_id: str) -> ChangeSubscription:
        """Subscription that re-resolves the owner's view on every change burst."""
        _require_owner(owner_id)
        return ChangeSubscription(
            self.repository,
            table="candidates",
            entity_id=owner_id,
            reread=lambda: self.get_resolved_profile(owner_id),
        )


def _require_owner(owner_id: str) -> None:
    if not isinstance(owner_id, str) or not owner_id.strip():
        raise ValidationError("owner_id is required")
