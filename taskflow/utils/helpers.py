"""Shared request-parsing helpers used by blueprints and services.

parse_datetime:  ISO date / datetime strings → aware UTC datetime
as_utc:          normalise naive datetimes read back from SQLite
get_pagination:  ?page= / ?limit= with bounds
get_json_body:   request JSON, which must be an object
str_field:       typed string read from a JSON body
api_success:     standard success envelope
"""
import logging
from datetime import date, datetime, time, timezone

from flask import jsonify, request

from taskflow.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def as_utc(value):
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value, field="date"):
    """Parse an ISO date or datetime string into an aware UTC datetime.

    Returns None for empty input; raises ValidationError on bad input.
    Supports:
    - YYYY-MM-DD (midnight UTC)
    - YYYY-MM-DDTHH:MM:SS[.ffffff][+HH:MM|Z]
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        return datetime.combine(date.fromisoformat(text), time.min, tzinfo=timezone.utc)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid {field}. Use ISO format (YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS).",
            details={field: str(value)},
        ) from exc


def get_pagination():
    """Read ``page`` / ``limit`` from the query string.

    Returns (page, limit); both are clamped to sane bounds.
    """
    page = request.args.get("page", 1, type=int) or 1
    limit = request.args.get("limit", DEFAULT_PAGE_SIZE, type=int) or DEFAULT_PAGE_SIZE
    return max(page, 1), min(max(limit, 1), MAX_PAGE_SIZE)


def api_success(data=None, status=200, **extra):
    """Return the standard success envelope ``{"success": true, "data": ...}``.

    Extra keyword arguments (``message``, pagination keys) are merged in at
    the top level.
    """
    body = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def get_json_body() -> dict:
    """Return the request's JSON object, ``{}`` when there is no body.

    Raises ValidationError when the body parses to anything but an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def str_field(data: dict, key: str, default: str = "") -> str:
    """Read ``data[key]`` as a string; ``default`` when it is missing or null."""
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", details={key: "expected string"})
    return value
