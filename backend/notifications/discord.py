"""
notifications/discord.py

Discord webhook client and message builders.

Several webhook URLs can be configured. Message ids are kept per URL slot
so a later event can edit the same messages instead of posting new ones.
"""

import logging
import re

import requests
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)

WEBHOOK_URL_RE = re.compile(r"discord(?:app)?\.com/api/webhooks/([^/]+)/([^/?]+)")

SUBMITTED_COLOR = 0x3498DB
REVIEW_STYLES = {
    "approved": (0x2ECC71, "✅"),
    "rejected": (0xE74C3C, "❌"),
    "modified": (0xF39C12, "✏️"),
}
MIXED_STYLE = (0x3498DB, "📝")
PENDING_EMOJI = "⏳"

VALUE_PREVIEW_LENGTH = 200


class WebhookError(Exception):
    pass


# ============================================================
# HTTP
# ============================================================

def send_message(webhook_url, payload):
    """Post a new message and return its id."""
    response = requests.post(
        webhook_url,
        params={"wait": "true"},
        json=payload,
        timeout=settings.NOTIFICATION_HTTP_TIMEOUT,
    )
    response.raise_for_status()
    message_id = response.json().get("id")
    if not message_id:
        raise WebhookError("Discord response did not include a message id")
    return str(message_id)


def edit_message(webhook_url, message_id, payload):
    match = WEBHOOK_URL_RE.search(webhook_url)
    if not match:
        raise WebhookError("Invalid Discord webhook URL format")

    webhook_id, token = match.groups()
    response = requests.patch(
        f"https://discord.com/api/webhooks/{webhook_id}/{token}/messages/{message_id}",
        json=payload,
        timeout=settings.NOTIFICATION_HTTP_TIMEOUT,
    )
    response.raise_for_status()
    return message_id


def deliver(webhook_urls, payload, message_ids=None):
    """
    Edit or send on every webhook.

    Returns ``(slots, errors)``. ``slots`` has one entry per URL: the
    message id, or the previous value (possibly ``None``) where that
    webhook failed. ``errors`` is empty when every webhook succeeded.
    """

    message_ids = list(message_ids or [])
    slots = []
    errors = []
    for index, url in enumerate(webhook_urls):
        existing = message_ids[index] if index < len(message_ids) else None
        try:
            if existing:
                slots.append(edit_message(url, existing, payload))
            else:
                slots.append(send_message(url, payload))
        except (requests.RequestException, ValueError, WebhookError) as exc:
            logger.warning("Discord webhook %s failed: %s", index, exc)
            slots.append(existing)
            errors.append(f"webhook {index}: {exc}")
    return slots, errors


# ============================================================
# MESSAGE BUILDERS
# ============================================================

def format_value(value, limit=VALUE_PREVIEW_LENGTH):
    if value is None:
        return "*empty*"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value) or "*empty*"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    text = str(value)
    if text == "":
        return "*empty*"
    if limit and len(text) > limit:
        return text[:limit] + "..."
    return text


def _urls(game_slug):
    base = settings.SITE_URL
    return f"{base}/games/{game_slug}", f"{base}/dashboard/submissions"


def build_submission_payload(corrections):
    """One correction gets a detailed layout, a batch gets one entry per field."""

    first = corrections[0]
    count = len(corrections)
    game_url, dashboard_url = _urls(first.game_slug)

    fields = [
        {"name": "Game", "value": f"[{first.game_title}]({game_url})", "inline": True},
        {"name": "Review", "value": f"[Open Dashboard]({dashboard_url})", "inline": True},
    ]

    if count == 1:
        fields.extend(
            [
                {"name": "Field", "value": first.field, "inline": True},
                {"name": "Old Value", "value": format_value(first.old_value), "inline": False},
                {"name": "New Value", "value": format_value(first.new_value), "inline": False},
                {"name": "Reason", "value": first.reason or "*No reason provided*", "inline": False},
            ]
        )
        title = "📝 New Correction Submitted"
        summary = "a correction"
        footer = f"Correction ID: {first.id}"
    else:
        fields.append(
            {
                "name": "Fields Changed",
                "value": ", ".join(c.field for c in corrections),
                "inline": False,
            }
        )
        for index, correction in enumerate(corrections, start=1):
            fields.append(
                {
                    "name": f"{correction.field} ({index}/{count})",
                    "value": (
                        f"**Old:** {format_value(correction.old_value)}\n"
                        f"**New:** {format_value(correction.new_value)}\n"
                        f"**Reason:** {correction.reason or '*No reason*'}"
                    ),
                    "inline": False,
                }
            )
        title = f"📝 {count} Corrections Submitted"
        summary = f"{count} corrections"
        footer = "Correction IDs: " + ", ".join(str(c.id) for c in corrections)

    embed = {
        "title": title,
        "description": (
            f"**{first.submitted_by_name}** submitted {summary} for **{first.game_title}**"
        ),
        "color": SUBMITTED_COLOR,
        "url": dashboard_url,
        "fields": fields,
        "footer": {"text": footer},
        "timestamp": timezone.now().isoformat(),
    }
    return {"embeds": [embed]}


def build_review_payload(corrections):
    """
    Review result for a message. Corrections of the same batch that are
    still pending stay listed with a waiting marker, so editing a shared
    submission message never drops them.
    """

    reviewed = [c for c in corrections if str(c.status) != "pending"] or list(corrections)
    first = reviewed[0]
    count = len(reviewed)
    waiting = len(corrections) - count
    game_url, dashboard_url = _urls(first.game_slug)

    statuses = {str(c.status) for c in reviewed}
    same_status = len(statuses) == 1
    status = str(first.status)
    color, emoji = REVIEW_STYLES.get(status, MIXED_STYLE) if same_status else MIXED_STYLE
    status_text = status.capitalize() if same_status else "Reviewed"
    verb = status if same_status else "reviewed"

    count_text = f"{count} correction{'s' if count > 1 else ''}"
    if waiting:
        count_text += f" ({waiting} still pending)"

    fields = [
        {"name": "Game", "value": f"[{first.game_title}]({game_url})", "inline": True},
        {"name": "Submitted By", "value": first.submitted_by_name, "inline": True},
        {"name": "Count", "value": count_text, "inline": True},
    ]
    for index, correction in enumerate(corrections, start=1):
        if str(correction.status) == "pending":
            item_emoji = PENDING_EMOJI
        else:
            item_emoji = REVIEW_STYLES.get(str(correction.status), MIXED_STYLE)[1]
        fields.append(
            {
                "name": "\u200b",
                "value": f"**Correction {index}:** {item_emoji} {correction.field}",
                "inline": False,
            }
        )
        if str(correction.status) == "modified":
            fields.append(
                {
                    "name": f"Correction {index}: Final Value",
                    "value": format_value(correction.final_value),
                    "inline": False,
                }
            )
        if correction.review_notes:
            fields.append(
                {
                    "name": f"Correction {index}: Review Notes",
                    "value": correction.review_notes,
                    "inline": False,
                }
            )

    plural = f"s ({count})" if count > 1 else ""
    embed = {
        "title": f"{emoji} Batch Correction{plural} {status_text}",
        "description": (
            f"**{first.reviewed_by_name}** {verb} "
            f"{'corrections' if count > 1 else 'a correction'} for **{first.game_title}**"
        ),
        "color": color,
        "url": dashboard_url,
        "fields": fields,
        "footer": {
            "text": f"Correction ID{'s' if len(corrections) > 1 else ''}: "
            + ", ".join(str(c.id) for c in corrections)
        },
        "timestamp": timezone.now().isoformat(),
    }
    return {"embeds": [embed]}
