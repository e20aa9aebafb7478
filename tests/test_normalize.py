from __future__ import annotations

from datetime import datetime, timezone

import pytest

from talentmatch.schemas.parsing import CVParseResponse, ParsedCV, ParsedJob
from talentmatch.services.normalize import (
    is_unknown,
    json_dict,
    optional_datetime,
    optional_float,
    optional_text,
    text_list,
)


@pytest.mark.parametrize("value", [None, "", "   ", "null", "NULL", " None ", "Not provided", "n/a", "N/A"])
def test_is_unknown_treats_sentinels_as_absent(value: object) -> None:
    assert is_unknown(value) is True


@pytest.mark.parametrize("value", ["0", "nullable", "Jane", 0, False, []])
def test_is_unknown_keeps_real_values(value: object) -> None:
    assert is_unknown(value) is False


def test_optional_text_strips_and_maps_sentinels() -> None:
    assert optional_text("  jane@example.com ") == "jane@example.com"
    assert optional_text("null") is None
    assert optional_text(7) == "7"
    assert optional_text({"nested": True}) is None


def test_text_list_wraps_bare_string_and_drops_sentinel_items() -> None:
    assert text_list("Python") == ["Python"]
    assert text_list(["Python", "null", " ", "SQL"]) == ["Python", "SQL"]
    assert text_list("null") is None
    assert text_list(42) is None


def test_json_dict_accepts_encoded_objects_only() -> None:
    assert json_dict('{"a": 1}') == {"a": 1}
    assert json_dict("[1, 2]") == {}
    assert json_dict("not json") == {}


def test_optional_float_and_datetime() -> None:
    assert optional_float("3.5") == 3.5
    assert optional_float("n/a") is None
    assert optional_float(True) is None
    assert optional_datetime("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert optional_datetime("yesterday") is None


def test_parsed_cv_treats_absent_and_sentinel_fields_alike() -> None:
    parsed = ParsedCV.from_payload(
        {
            "personalInfo": {"name": "Jane Doe", "email": "null", "phoneNumber": "+1 555 0100"},
            "skills": ["Python", "null"],
        }
    )

    assert parsed.name == "Jane Doe"
    assert parsed.email is None
    assert parsed.phone == "+1 555 0100"
    assert parsed.address is None
    assert parsed.skills == ["Python"]
    assert parsed.education is None


def test_parsed_cv_alias_with_value_wins_over_sentinel_alias() -> None:
    parsed = ParsedCV.from_payload({"personalInfo": {"github": "null", "githubUrl": "https://github.com/jane"}})
    assert parsed.github_url == "https://github.com/jane"


def test_parsed_cv_reads_education_and_work_rows() -> None:
    parsed = ParsedCV.from_payload(
        {
            "education": [{"institution": "MIT", "degree": "BSc", "major": "CS"}, {"school": "null"}],
            "workExperience": [{"employer": "Acme", "position": "Engineer"}, "garbage"],
            "experienceYears": "4",
        }
    )

    assert [entry.school for entry in parsed.education or []] == ["MIT"]
    assert parsed.education[0].field == "CS"
    assert [(entry.company, entry.title) for entry in parsed.work_experience or []] == [("Acme", "Engineer")]
    assert parsed.experience_years == 4.0


def test_parsed_job_reads_company_info_sentinels() -> None:
    parsed = ParsedJob.from_payload(
        {
            "jobTitle": "Data Engineer",
            "requiredSkills": ["SQL", "Airflow"],
            "companyInfo": [{"companyName": "Acme", "website": "Not provided", "location": "Remote - EU"}],
        }
    )

    assert parsed.title == "Data Engineer"
    assert parsed.company_name == "Acme"
    assert parsed.website is None
    assert parsed.location == "Remote - EU"
    assert parsed.required_skills == ["SQL", "Airflow"]


def test_cv_parse_response_requires_hash() -> None:
    with pytest.raises(ValueError):
        CVParseResponse.from_payload({"cv_id": "doc-1", "parsed_cv": {}})

    response = CVParseResponse.from_payload(
        {"cv_id": "doc-1", "hash": "abc", "is_duplicate": True, "embeddings": {"skills": [0.1, 0.2, "x"]}}
    )
    assert response.is_duplicate is True
    assert response.embeddings == {"skills": [0.1, 0.2]}
