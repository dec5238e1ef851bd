"""
notifications/services.py

Outbox for Discord notifications.

Callers enqueue inside their transaction; delivery starts only after
commit and never raises into the request that caused it. Failed deliveries
are retried with exponential backoff until NOTIFICATION_MAX_ATTEMPTS, then
marked failed (counted in dashboard stats).

A worker claims an event before delivering it, so the post-commit thread
and the retry command never send the same event twice. A newer submission
message for the same corrections cancels the older pending one and takes
over its message ids.
"""

import logging
import threading
from datetime import timedelta

from django.conf import settings
from django.db import connection, transaction
from django.db.models import Q
from django.utils import timezone

from corrections.models import Correction
from notifications import discord
from notifications.models import NotificationEvent

logger = logging.getLogger(__name__)


# ============================================================
# ENQUEUE
# ============================================================

def enqueue_correction_batch(*, corrections, message_ids=None, superseded=()):
    message_ids = cancel_stale_submission_events(
        correction_ids=[c.pk for c in corrections] + [c.pk for c in superseded],
        message_ids=message_ids,
    )
    return _enqueue(
        kind=NotificationEvent.Kind.CORRECTION_SUBMITTED,
        corrections=corrections,
        message_ids=message_ids,
        linked=superseded,
    )


def enqueue_review_batch(*, corrections, message_ids=None):
    return _enqueue(
        kind=NotificationEvent.Kind.CORRECTIONS_REVIEWED,
        corrections=corrections,
        message_ids=message_ids,
    )


def cancel_stale_submission_events(*, correction_ids, message_ids=None):
    """
    Cancel pending submission events that show or link any of
    ``correction_ids``.

    Returns ``message_ids`` with its empty slots filled from the cancelled
    events, so the replacement edits whatever they already posted.
    """

    slots = list(message_ids or [])
    stale_ids = list(
        NotificationEvent.objects.filter(
            kind=NotificationEvent.Kind.CORRECTION_SUBMITTED,
            status=NotificationEvent.Status.PENDING,
        )
        .filter(Q(corrections__in=correction_ids) | Q(linked_corrections__in=correction_ids))
        .values_list("pk", flat=True)
        .distinct()
    )
    if not stale_ids:
        return slots

    for event in NotificationEvent.objects.filter(pk__in=stale_ids).order_by("created_at"):
        for index, message_id in enumerate(event.message_ids or []):
            if index >= len(slots):
                slots.append(message_id)
            elif not slots[index]:
                slots[index] = message_id

    cancelled = NotificationEvent.objects.filter(
        pk__in=stale_ids,
        status=NotificationEvent.Status.PENDING,
    ).update(status=NotificationEvent.Status.CANCELLED, next_attempt_at=None)
    logger.info("Cancelled %s stale submission notification(s)", cancelled)
    return slots


def _enqueue(*, kind, corrections, message_ids, linked=()):
    if not settings.DISCORD_WEBHOOK_URLS:
        logger.debug("Discord notifications disabled, not queuing %s", kind)
        return None
    if not corrections:
        return None

    event = NotificationEvent.objects.create(
        kind=kind,
        message_ids=list(message_ids or []),
        # Fallback for the retry command if the immediate attempt never runs.
        next_attempt_at=timezone.now() + timedelta(seconds=settings.NOTIFICATION_RETRY_BASE_SECONDS),
    )
    event.corrections.set(corrections)
    if linked:
        event.linked_corrections.set(linked)

    event_id = event.pk
    transaction.on_commit(lambda: dispatch(event_id))
    return event


def dispatch(event_id):
    if settings.NOTIFICATIONS_ASYNC:
        threading.Thread(
            target=_deliver_in_background,
            args=(event_id,),
            name=f"notification-{event_id}",
            daemon=True,
        ).start()
    else:
        deliver_event_by_id(event_id)


def _deliver_in_background(event_id):
    try:
        deliver_event_by_id(event_id)
    except Exception:
        logger.exception("Notification %s crashed during delivery", event_id)
    finally:
        connection.close()


# ============================================================
# DELIVERY
# ============================================================

def _build_payload(event, corrections):
    if event.kind == NotificationEvent.Kind.CORRECTION_SUBMITTED:
        return discord.build_submission_payload(corrections)
    return discord.build_review_payload(corrections)


def retry_delay(attempts):
    return timedelta(seconds=settings.NOTIFICATION_RETRY_BASE_SECONDS * 2 ** (attempts - 1))


def deliver_event_by_id(event_id):
    event = NotificationEvent.objects.filter(
        pk=event_id,
        status=NotificationEvent.Status.PENDING,
    ).first()
    if event is None:
        return None
    return deliver_event(event)


def claim_event(event: NotificationEvent, now) -> bool:
    """
    Lease a pending event by pushing ``next_attempt_at`` past the claim
    window. The update only matches if the row is unchanged since it was
    loaded, so exactly one worker wins.
    """

    lease_until = now + timedelta(seconds=settings.NOTIFICATION_CLAIM_SECONDS)
    rows = NotificationEvent.objects.filter(
        pk=event.pk,
        status=NotificationEvent.Status.PENDING,
        attempts=event.attempts,
    )
    if event.next_attempt_at is None:
        rows = rows.filter(next_attempt_at__isnull=True)
    else:
        rows = rows.filter(next_attempt_at=event.next_attempt_at)

    if not rows.update(next_attempt_at=lease_until):
        return False
    event.next_attempt_at = lease_until
    return True


def deliver_event(event: NotificationEvent, now=None):
    """
    One delivery attempt. Returns ``None`` when another worker holds the
    event.

    Whatever ids came back are stored on the event and on every correction
    it covers, even after a partial failure, so the retry edits the
    messages that did go out and only re-sends the missing ones.
    """

    now = now or timezone.now()
    if not claim_event(event, now):
        logger.info("Notification %s is claimed by another worker, skipping", event.pk)
        return None

    corrections = list(event.corrections.order_by("submitted_at"))
    if not corrections:
        event.status = NotificationEvent.Status.FAILED
        event.next_attempt_at = None
        event.last_error = "No corrections attached."
        event.save(update_fields=["status", "next_attempt_at", "last_error"])
        return event

    if event.kind == NotificationEvent.Kind.CORRECTION_SUBMITTED:
        # Reviewed or superseded since queuing; their own events report them.
        corrections = [c for c in corrections if c.status == Correction.Status.PENDING]
        if not corrections:
            event.status = NotificationEvent.Status.CANCELLED
            event.next_attempt_at = None
            event.save(update_fields=["status", "next_attempt_at"])
            logger.info("Notification %s cancelled, no pending corrections left", event.pk)
            return event

    payload = _build_payload(event, corrections)
    slots, errors = discord.deliver(settings.DISCORD_WEBHOOK_URLS, payload, event.message_ids)

    event.attempts += 1
    event.message_ids = slots

    correction_ids = [c.pk for c in corrections]
    correction_ids += list(event.linked_corrections.values_list("pk", flat=True))
    Correction.objects.filter(pk__in=correction_ids).update(discord_message_ids=slots)

    if not errors:
        event.status = NotificationEvent.Status.DELIVERED
        event.delivered_at = now
        event.next_attempt_at = None
        event.last_error = ""
        logger.info("Notification %s delivered (%s)", event.pk, event.kind)
    elif event.attempts >= settings.NOTIFICATION_MAX_ATTEMPTS:
        event.status = NotificationEvent.Status.FAILED
        event.next_attempt_at = None
        event.last_error = "; ".join(errors)
        logger.error(
            "Notification %s failed after %s attempts: %s",
            event.pk,
            event.attempts,
            event.last_error,
        )
    else:
        event.next_attempt_at = now + retry_delay(event.attempts)
        event.last_error = "; ".join(errors)
        logger.warning(
            "Notification %s attempt %s failed, retrying at %s",
            event.pk,
            event.attempts,
            event.next_attempt_at.isoformat(),
        )

    event.save(
        update_fields=[
            "attempts",
            "message_ids",
            "status",
            "delivered_at",
            "next_attempt_at",
            "last_error",
        ]
    )
    return event


def due_events(now=None):
    now = now or timezone.now()
    return NotificationEvent.objects.filter(status=NotificationEvent.Status.PENDING).filter(
        Q(next_attempt_at__isnull=True) | Q(next_attempt_at__lte=now)
    )


def deliver_due_events(now=None):
    """Attempt every due event. Events claimed elsewhere are left out."""
    now = now or timezone.now()
    attempted = []
    for event in due_events(now):
        event = deliver_event(event, now=now)
        if event is not None:
            attempted.append(event)
    return attempted
