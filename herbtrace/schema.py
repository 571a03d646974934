"""
Field-level validation helpers for incoming JSON payloads.

Each helper takes the parsed mapping, the field name and the path of the
enclosing object, and raises ValidationError naming the full field path.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, Iterable

from .errors import ValidationError

_MISSING = object()


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def require_mapping(value: Any, path: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError("expected an object", path=path or "<root>")
    return value


def check_keys(data: dict[str, Any], allowed: Iterable[str], path: str) -> None:
    """Reject keys not in allowed."""
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(f"unknown field(s): {', '.join(unknown)}", path=path or "<root>")


def req_str(data: dict[str, Any], key: str, path: str) -> str:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        raise ValidationError("is required", path=_join(path, key))
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("must be a non-empty string", path=_join(path, key))
    return value


def opt_str(data: dict[str, Any], key: str, path: str) -> str | None:
    if data.get(key) is None:
        return None
    return req_str(data, key, path)


def req_number(
    data: dict[str, Any],
    key: str,
    path: str,
    *,
    gt: float | None = None,
    ge: float | None = None,
    le: float | None = None,
) -> float:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        raise ValidationError("is required", path=_join(path, key))
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("must be a number", path=_join(path, key))
    if gt is not None and not value > gt:
        raise ValidationError(f"must be greater than {gt:g}", path=_join(path, key))
    if ge is not None and not value >= ge:
        raise ValidationError(f"must be at least {ge:g}", path=_join(path, key))
    if le is not None and not value <= le:
        raise ValidationError(f"must be at most {le:g}", path=_join(path, key))
    return value


def opt_number(
    data: dict[str, Any],
    key: str,
    path: str,
    *,
    gt: float | None = None,
    ge: float | None = None,
    le: float | None = None,
) -> float | None:
    if data.get(key) is None:
        return None
    return req_number(data, key, path, gt=gt, ge=ge, le=le)


def opt_bool(data: dict[str, Any], key: str, path: str) -> bool | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError("must be true or false", path=_join(path, key))
    return value


def req_choice(data: dict[str, Any], key: str, choices: Iterable[str], path: str) -> str:
    value = req_str(data, key, path)
    allowed = list(choices)
    if value not in allowed:
        raise ValidationError(f"must be one of {', '.join(allowed)}", path=_join(path, key))
    return value


def str_list(data: dict[str, Any], key: str, path: str, *, required: bool = False) -> list[str]:
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError("is required", path=_join(path, key))
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ValidationError("must be a list of non-empty strings", path=_join(path, key))
    if required and not value:
        raise ValidationError("must not be empty", path=_join(path, key))
    return list(value)


def opt_mapping(data: dict[str, Any], key: str, path: str) -> dict[str, Any] | None:
    value = data.get(key)
    if value is None:
        return None
    return require_mapping(value, _join(path, key))


# -----------------------------------------------------------------------------
# Dates
# -----------------------------------------------------------------------------


def parse_datetime(text: Any, path: str) -> datetime:
    """
    Parse an ISO-8601 timestamp.

    A trailing "Z" is accepted. Naive values and bare dates are taken as UTC.
    """
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("must be an ISO-8601 timestamp", path=path)
    raw = text.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"invalid ISO-8601 timestamp {text!r}", path=path) from None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def parse_date(text: Any, path: str) -> date:
    if not isinstance(text, str):
        raise ValidationError("must be an ISO date (YYYY-MM-DD)", path=path)
    try:
        return date.fromisoformat(text.strip()[:10])
    except ValueError:
        raise ValidationError(f"invalid date {text!r}", path=path) from None


# -----------------------------------------------------------------------------
# Arguments
# -----------------------------------------------------------------------------


def parse_json_arg(text: str, name: str) -> Any:
    """Decode one JSON-encoded string argument."""
    try:
        return json.loads(text)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValidationError(f"argument is not valid JSON: {e}", path=name) from None
