"""Single authoritative value per profile field.

Every multi-source field is listed in ``FIELD_SOURCES`` with its sources in
priority order and goes through :func:`resolve`; nothing else picks between
sources.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import logging
from typing import Any

from talentmatch.schemas.candidates import AccountProfile, CandidateProfile, ResolvedProfileView
from talentmatch.schemas.parsing import ParsedCV
from talentmatch.services.normalize import is_unknown

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResolutionContext:
    profile: CandidateProfile | None
    parsed: ParsedCV | None
    account: AccountProfile | None


SourceGetter = Callable[[ResolutionContext], Any]


def _parsed(attr: str) -> SourceGetter:
    return lambda ctx: getattr(ctx.parsed, attr) if ctx.parsed is not None else None


def _stored(attr: str) -> SourceGetter:
    return lambda ctx: getattr(ctx.profile, attr) if ctx.profile is not None else None


def _account(attr: str) -> SourceGetter:
    return lambda ctx: getattr(ctx.account, attr) if ctx.account is not None else None


FIELD_SOURCES: dict[str, tuple[SourceGetter, ...]] = {
    "name": (_parsed("name"), _account("full_name")),
    "email": (_parsed("email"), _stored("email_from_cv"), _account("email")),
    "phone": (_parsed("phone"), _stored("phone_number")),
    "address": (_parsed("address"), _stored("address"), _account("location")),
    "github_url": (_parsed("github_url"), _stored("github_url")),
    "linkedin_url": (_parsed("linkedin_url"), _stored("linkedin_url")),
    "portfolio_url": (_parsed("portfolio_url"), _stored("portfolio_url")),
}


def resolve(
    field_name: str,
    sources: Iterable[Any],
    *,
    is_sentinel: Callable[[Any], bool] = is_unknown,
) -> Any:
    """Returns the first source value that is present and not a sentinel, else ``None``."""
    for position, value in enumerate(sources):
        if is_sentinel(value):
            continue
        if position:
            logger.debug("field=%s resolved from fallback source=%s", field_name, position)
        return value.strip() if isinstance(value, str) else value
    return None


def resolve_field(field_name: str, context: ResolutionContext) -> Any:
    getters = FIELD_SOURCES[field_name]
    return resolve(field_name, (getter(context) for getter in getters))


def resolve_profile_view(
    profile: CandidateProfile | None,
    account: AccountProfile | None = None,
    *,
    owner_id: str | None = None,
) -> ResolvedProfileView:
    identity = owner_id or (profile.id if profile else None) or (account.id if account else None)
    if identity is None:
        raise ValueError("a profile, an account or an owner id is required")

    parsed = ParsedCV.from_payload(profile.parsed_cv_data) if profile and profile.parsed_cv_data else None
    context = ResolutionContext(profile=profile, parsed=parsed, account=account)
    values = {field_name: resolve_field(field_name, context) for field_name in FIELD_SOURCES}
    values["bio"] = resolve("bio", [profile.bio if profile else None])

    return ResolvedProfileView(
        owner_id=identity,
        skills=list(profile.skills or []) if profile else [],
        education=list(profile.education or []) if profile else [],
        work_experience=list(profile.work_experience or []) if profile else [],
        certifications=list(profile.certifications or []) if profile else [],
        cv_hash=profile.cv_hash if profile else None,
        missing_fields=[field_name for field_name, value in values.items() if value is None],
        **values,
    )
