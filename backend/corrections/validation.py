"""
corrections/validation.py

Boundary validation for correction payloads and admin edits. Everything
returned from here is sanitized and safe to store.
"""

from django.core.exceptions import ValidationError

from backend.security import (
    blocked_url_reason,
    is_direct_download_link,
    is_valid_url,
    sanitize_string,
    url_validation_error,
)
from games.fields import (
    BOOLEAN_FIELDS,
    DOWNLOAD_FIELDS,
    FIELD_ATTRIBUTES,
    LINK_FIELDS,
    LIST_FIELDS,
    NON_CLEARABLE_FIELDS,
    is_empty,
)
from games.models import Game

LONG_TEXT_FIELDS = {"description"}

REQUIRED_KEYS = ("gameId", "gameSlug", "gameTitle", "field")


def _clean_link(field, value):
    if not isinstance(value, str):
        raise ValidationError(f'Field "{field}" must be a URL.')
    url = sanitize_string(value, 500)
    if not is_valid_url(url):
        raise ValidationError("Invalid URL format")

    reason = blocked_url_reason(url)
    if reason:
        raise ValidationError(reason)

    domain_error = url_validation_error(field, url)
    if domain_error:
        raise ValidationError(domain_error)

    if field not in DOWNLOAD_FIELDS and is_direct_download_link(url):
        raise ValidationError(
            "Direct download links are not allowed in this field. "
            "Use the dedicated download link field instead."
        )
    return url


def _clean_list(field, value):
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValidationError(f'Field "{field}" must be a list.')

    cleaned = []
    for item in value:
        if not isinstance(item, str):
            raise ValidationError(f'Field "{field}" must be a list of text values.')
        item = sanitize_string(item, 1000)
        if item:
            cleaned.append(item)
    return cleaned


def clean_field_value(field, value):
    """
    Validate a proposed value for one game field.

    Returns ``None`` for a clear, otherwise the cleaned value.
    """

    if field not in FIELD_ATTRIBUTES:
        raise ValidationError("Invalid field")

    if is_empty(value):
        if field in NON_CLEARABLE_FIELDS:
            raise ValidationError(f'Field "{field}" is required and cannot be cleared')
        return None

    if field in LIST_FIELDS:
        cleaned = _clean_list(field, value)
        return cleaned or None

    if field in BOOLEAN_FIELDS:
        if not isinstance(value, bool):
            raise ValidationError(f'Field "{field}" must be true or false.')
        return value

    if field in LINK_FIELDS:
        return _clean_link(field, value)

    if not isinstance(value, str):
        raise ValidationError(f'Field "{field}" must be text.')

    max_length = 5000 if field in LONG_TEXT_FIELDS else 1000
    cleaned = sanitize_string(value, max_length)
    if not cleaned and field in NON_CLEARABLE_FIELDS:
        raise ValidationError(f'Field "{field}" is required and cannot be cleared')
    if field == "status" and cleaned not in Game.Status.values:
        raise ValidationError(
            f"Invalid status. Allowed: {sorted(Game.Status.values)}"
        )
    return cleaned or None


def _clean_snapshot(value):
    if isinstance(value, str):
        return sanitize_string(value, 5000)
    if isinstance(value, list):
        return [sanitize_string(v, 1000) if isinstance(v, str) else v for v in value]
    return value


def validate_submission(payload):
    """
    Check a raw ``POST /api/corrections`` body.

    Raises ``ValidationError`` with the first problem found.
    """

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON body.")

    reason = payload.get("reason")
    if (
        any(not payload.get(key) for key in REQUIRED_KEYS)
        or not isinstance(reason, str)
        or not reason.strip()
    ):
        raise ValidationError("Missing required fields")

    field = str(payload["field"])
    if field not in FIELD_ATTRIBUTES:
        raise ValidationError("Invalid field")

    if "newValue" not in payload and field not in NON_CLEARABLE_FIELDS:
        raise ValidationError("Missing required fields")

    return {
        "game_id": sanitize_string(str(payload["gameId"]), 100),
        "game_slug": sanitize_string(str(payload["gameSlug"]), 200),
        "game_title": sanitize_string(str(payload["gameTitle"]), 255),
        "field": field,
        "old_value": _clean_snapshot(payload.get("oldValue")),
        "new_value": clean_field_value(field, payload.get("newValue")),
        "reason": sanitize_string(reason, 2000),
    }
