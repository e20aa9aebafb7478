from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from talentmatch.services.normalize import (
    first_mapping,
    is_unknown,
    json_dict,
    json_list,
    optional_datetime,
    optional_float,
    optional_text,
    text_list,
)

_PERSONAL_INFO_KEYS = {
    "name": "name",
    "fullName": "name",
    "email": "email",
    "phone": "phone",
    "phoneNumber": "phone",
    "address": "address",
    "location": "address",
    "github": "github_url",
    "githubUrl": "github_url",
    "github_url": "github_url",
    "linkedin": "linkedin_url",
    "linkedinUrl": "linkedin_url",
    "linkedin_url": "linkedin_url",
    "portfolio": "portfolio_url",
    "portfolioUrl": "portfolio_url",
    "portfolio_url": "portfolio_url",
    "website": "portfolio_url",
}
_CV_SECTION_KEYS = {
    "skills": "skills",
    "education": "education",
    "work_experience": "work_experience",
    "workExperience": "work_experience",
    "experience": "work_experience",
    "certifications": "certifications",
    "experience_years": "experience_years",
    "experienceYears": "experience_years",
}


def _pick(mapping: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        text = optional_text(mapping.get(key))
        if text is not None:
            return text
    return None


def _collect(raw: dict[str, Any], aliases: dict[str, str]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, field_name in aliases.items():
        if key not in raw:
            continue
        # The first alias carrying a real value wins; a sentinel never hides one.
        if field_name in data and not is_unknown(data[field_name]):
            continue
        data[field_name] = raw[key]
    return data


class EducationEntry(BaseModel):
    school: str | None = None
    degree: str | None = None
    field: str | None = None
    year: str | None = None

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> EducationEntry | None:
        entry = cls(
            school=_pick(raw, "school", "institution", "university"),
            degree=_pick(raw, "degree", "qualification"),
            field=_pick(raw, "field", "field_of_study", "fieldOfStudy", "major"),
            year=_pick(raw, "year", "graduation_year", "period"),
        )
        if entry.school is None and entry.degree is None and entry.field is None:
            return None
        return entry


class WorkEntry(BaseModel):
    company: str | None = None
    title: str | None = None
    period: str | None = None
    description: str | None = None

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> WorkEntry | None:
        entry = cls(
            company=_pick(raw, "company", "employer", "organization"),
            title=_pick(raw, "title", "position", "role", "jobTitle"),
            period=_pick(raw, "period", "duration", "dates"),
            description=_pick(raw, "description", "summary"),
        )
        if entry.company is None and entry.title is None:
            return None
        return entry


class ParsedCV(BaseModel):
    """Candidate fields as reported by the parser.

    A field the parser left out and a field it reported as a sentinel are both
    ``None``.
    """

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    github_url: str | None = None
    linkedin_url: str | None = None
    portfolio_url: str | None = None
    skills: list[str] | None = None
    education: list[EducationEntry] | None = None
    work_experience: list[WorkEntry] | None = None
    certifications: list[str] | None = None
    experience_years: float | None = None

    @field_validator("name", "email", "phone", "address", "github_url", "linkedin_url", "portfolio_url", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return optional_text(value)

    @field_validator("skills", "certifications", mode="before")
    @classmethod
    def _texts(cls, value: Any) -> list[str] | None:
        return text_list(value)

    @field_validator("education", mode="before")
    @classmethod
    def _education(cls, value: Any) -> list[EducationEntry] | None:
        if value and isinstance(value, list) and all(isinstance(item, EducationEntry) for item in value):
            return value
        rows = json_list(value)
        if rows is None:
            return None
        return [entry for entry in (EducationEntry.from_mapping(row) for row in rows) if entry is not None]

    @field_validator("work_experience", mode="before")
    @classmethod
    def _work(cls, value: Any) -> list[WorkEntry] | None:
        if value and isinstance(value, list) and all(isinstance(item, WorkEntry) for item in value):
            return value
        rows = json_list(value)
        if rows is None:
            return None
        return [entry for entry in (WorkEntry.from_mapping(row) for row in rows) if entry is not None]

    @field_validator("experience_years", mode="before")
    @classmethod
    def _years(cls, value: Any) -> float | None:
        return optional_float(value)

    @classmethod
    def from_payload(cls, raw: Any) -> ParsedCV:
        payload = json_dict(raw)
        data = _collect(json_dict(payload.get("personalInfo") or payload.get("personal_info")), _PERSONAL_INFO_KEYS)
        data.update(_collect(payload, _CV_SECTION_KEYS))
        return cls.model_validate(data)


class ParsedJob(BaseModel):
    title: str | None = None
    company_name: str | None = None
    location: str | None = None
    website: str | None = None
    telephone: str | None = None
    description: str | None = None
    required_skills: list[str] | None = None
    responsibilities: list[str] | None = None

    @field_validator("title", "company_name", "location", "website", "telephone", "description", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return optional_text(value)

    @field_validator("required_skills", "responsibilities", mode="before")
    @classmethod
    def _texts(cls, value: Any) -> list[str] | None:
        return text_list(value)

    @classmethod
    def from_payload(cls, raw: Any) -> ParsedJob:
        payload = json_dict(raw)
        data = _collect(
            payload,
            {
                "jobTitle": "title",
                "title": "title",
                "description": "description",
                "location": "location",
                "requiredSkills": "required_skills",
                "required_skills": "required_skills",
                "roles_or_responsibilities": "responsibilities",
                "responsibilities": "responsibilities",
            },
        )
        if "companyInfo" in payload:
            company = first_mapping(payload.get("companyInfo"))
            data["company_name"] = company.get("companyName")
            data["website"] = company.get("website")
            data["telephone"] = company.get("telephoneNumber")
            if is_unknown(data.get("location")):
                data["location"] = company.get("location")
        return cls.model_validate(data)


def _embeddings(raw: Any) -> dict[str, list[float]]:
    embeddings: dict[str, list[float]] = {}
    for name, vector in json_dict(raw).items():
        if isinstance(vector, list):
            embeddings[name] = [float(item) for item in vector if isinstance(item, (int, float))]
    return embeddings


class CVParseResponse(BaseModel):
    document_id: str | None = None
    hash: str
    is_duplicate: bool = False
    parsed: ParsedCV
    raw: dict[str, Any] = Field(default_factory=dict)
    embeddings: dict[str, list[float]] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> CVParseResponse:
        body = json_dict(payload)
        content_hash = optional_text(body.get("hash")) or optional_text(body.get("cv_hash"))
        if content_hash is None:
            raise ValueError("parse response is missing the document hash")
        raw = json_dict(body.get("parsed_cv") or body.get("parsed_fields"))
        return cls(
            document_id=optional_text(body.get("cv_id")) or optional_text(body.get("document_id")),
            hash=content_hash,
            is_duplicate=body.get("is_duplicate") is True,
            parsed=ParsedCV.from_payload(raw),
            raw=raw,
            embeddings=_embeddings(body.get("embeddings")),
        )


class JobParseResponse(BaseModel):
    job_id: str
    hash: str
    is_duplicate: bool = False
    parsed: ParsedJob
    raw: dict[str, Any] = Field(default_factory=dict)
    job_text: str | None = None
    embeddings: dict[str, list[float]] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> JobParseResponse:
        body = json_dict(payload)
        job_id = optional_text(body.get("job_id")) or optional_text(body.get("id"))
        content_hash = optional_text(body.get("hash")) or optional_text(body.get("job_hash"))
        if job_id is None or content_hash is None:
            raise ValueError("job parse response is missing the job id or hash")
        raw = json_dict(body.get("parsed_job") or body.get("parsed_fields"))
        return cls(
            job_id=job_id,
            hash=content_hash,
            is_duplicate=body.get("is_duplicate") is True,
            parsed=ParsedJob.from_payload(raw),
            raw=raw,
            job_text=optional_text(body.get("job_text")),
            embeddings=_embeddings(body.get("embeddings")),
        )


def _scores(body: dict[str, Any]) -> dict[str, float]:
    scores: dict[str, float] = {}
    for key, value in body.items():
        if key.endswith("_score"):
            score = optional_float(value)
            if score is not None:
                scores[key] = score
    return scores


class JobMatch(BaseModel):
    job_id: str
    job_title: str | None = None
    combined_score: float = 0.0
    scores: dict[str, float] = Field(default_factory=dict)
    created_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> JobMatch:
        body = json_dict(payload)
        job_id = optional_text(body.get("job_id"))
        if job_id is None:
            raise ValueError("job match is missing job_id")
        scores = _scores(body)
        return cls(
            job_id=job_id,
            job_title=optional_text(body.get("job_title")),
            combined_score=scores.get("combined_score", 0.0),
            scores=scores,
            created_at=optional_datetime(body.get("created_at")),
        )


class CandidateMatch(BaseModel):
    candidate_id: str
    name: str | None = None
    email: str | None = None
    combined_score: float = 0.0
    scores: dict[str, float] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> CandidateMatch:
        body = json_dict(payload)
        candidate_id = optional_text(body.get("cv_id")) or optional_text(body.get("candidate_id"))
        if candidate_id is None:
            raise ValueError("candidate match is missing cv_id")
        candidate = json_dict(body.get("candidate"))
        scores = _scores(body)
        return cls(
            candidate_id=candidate_id,
            name=optional_text(candidate.get("name")),
            email=optional_text(candidate.get("email")),
            combined_score=scores.get("combined_score", 0.0),
            scores=scores,
        )
