from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from talentmatch.schemas.parsing import EducationEntry, ParsedCV, WorkEntry
from talentmatch.services.normalize import is_unknown

NOT_AVAILABLE = "Not available"


class CandidateProfile(BaseModel):
    id: str
    bio: str | None = None
    address: str | None = None
    email_from_cv: str | None = None
    phone_number: str | None = None
    github_url: str | None = None
    linkedin_url: str | None = None
    portfolio_url: str | None = None
    skills: list[str] | None = None
    education: list[EducationEntry] | None = None
    work_experience: list[WorkEntry] | None = None
    certifications: list[str] | None = None
    experience_years: float | None = None
    cv_content_hash: str | None = None
    cv_hash: str | None = None
    cv_id: str | None = None
    cv_file_name: str | None = None
    cv_file_type: str | None = None
    parsed_cv_data: dict[str, Any] | None = None
    cv_embeddings: dict[str, list[float]] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AccountProfile(BaseModel):
    id: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    location: str | None = None
    user_type: str | None = None
    company_name: str | None = None

    @property
    def full_name(self) -> str | None:
        parts = [part.strip() for part in (self.first_name, self.last_name) if not is_unknown(part)]
        return " ".join(parts) or None


class ResolvedProfileView(BaseModel):
    owner_id: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    github_url: str | None = None
    linkedin_url: str | None = None
    portfolio_url: str | None = None
    bio: str | None = None
    skills: list[str] = Field(default_factory=list)
    education: list[EducationEntry] = Field(default_factory=list)
    work_experience: list[WorkEntry] = Field(default_factory=list)
    certifications: list[str] = Field(default_factory=list)
    cv_hash: str | None = None
    missing_fields: list[str] = Field(default_factory=list)

    def display(self, field_name: str) -> str:
        value = getattr(self, field_name)
        if value is None:
            return NOT_AVAILABLE
        return str(value)


class BioUpdateRequest(BaseModel):
    bio: str = Field(max_length=5000)


class CVIngestResult(BaseModel):
    owner_id: str
    document_id: str | None = None
    hash: str
    is_duplicate: bool
    parsed: ParsedCV
    embedding_dimensions: dict[str, int] = Field(default_factory=dict)
    profile: CandidateProfile | None = None
    warnings: list[dict[str, Any]] = Field(default_factory=list)
