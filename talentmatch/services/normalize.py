"""Normalization of duck-typed parser payloads into plain optional values.

The parsing service reports a field it could not find in three ways: the key
is missing, the value is JSON ``null``, or the value is a sentinel string such
as ``"null"``. Everything downstream of the client sees ``None`` for all three.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

SENTINEL_VALUES = frozenset({"null", "none", "not provided", "n/a"})


def is_unknown(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return not stripped or stripped.lower() in SENTINEL_VALUES
    return False


def optional_text(value: Any) -> str | None:
    if is_unknown(value):
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def text_list(value: Any) -> list[str] | None:
    if is_unknown(value):
        return None
    if isinstance(value, str):
        # A single skill sometimes arrives as a bare string.
        return [value.strip()]
    if not isinstance(value, (list, tuple)):
        return None
    items: list[str] = []
    for item in value:
        text = optional_text(item)
        if text:
            items.append(text)
    return items


def json_list(value: Any) -> list[dict[str, Any]] | None:
    if is_unknown(value):
        return None
    if not isinstance(value, list):
        return None
    return [item for item in value if isinstance(item, dict)]


def json_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return {}
    if isinstance(value, dict):
        return value
    return {}


def optional_float(value: Any) -> float | None:
    if is_unknown(value) or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def optional_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if is_unknown(value) or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def first_mapping(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        for item in value:
            if isinstance(item, dict):
                return item
    return {}
