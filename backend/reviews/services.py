"""
reviews/services.py

Central logic for review decisions.

This file controls:
- Single and batch review of corrections
- Applying approved values to the live game
- Audit log and reviewer action records
- Submitter counters
- Dashboard statistics
"""

import logging
import uuid

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from backend.security import sanitize_string
from corrections.models import Correction
from corrections.state_machine import REVIEW_DECISIONS, transition_correction, validate_transition
from corrections.validation import clean_field_value
from games.models import Game, GameUpdate
from games.services import apply_field_change
from notifications.models import NotificationEvent
from notifications.services import enqueue_review_batch
from reviews.models import AuditLog, ReviewerAction
from users.services import can_review_corrections, increment_counter, is_developer

logger = logging.getLogger(__name__)

User = get_user_model()

# Distinguishes "no final value given" from an explicit null (clear).
UNSET = object()


# ============================================================
# MAIN REVIEW LOGIC
# ============================================================

def _require_reviewer(reviewer):
    if not can_review_corrections(reviewer):
        raise PermissionDenied("You do not have permission to review corrections")


@transaction.atomic
def review_correction(
    *,
    correction_id,
    reviewer,
    decision,
    notes="",
    final_value=UNSET,
    notify=True,
):
    """
    Move a pending correction to approved, modified or rejected.

    Approved and modified corrections are applied to the game, get exactly
    one AuditLog entry and count towards the submitter's approved_count.
    A final value overrides the submitted value; ``modified`` requires one.
    """

    _require_reviewer(reviewer)
    decision = str(decision)
    if decision not in REVIEW_DECISIONS:
        raise ValidationError("Invalid status")

    correction = (
        Correction.objects.select_for_update()
        .select_related("submitted_by")
        .get(pk=correction_id)
    )
    validate_transition(correction.status, decision)

    if correction.submitted_by_id == reviewer.pk and not is_developer(reviewer):
        raise PermissionDenied("You cannot review your own correction.")

    if decision == Correction.Status.MODIFIED and final_value is UNSET:
        raise ValidationError("A final value is required when modifying a correction.")

    value = None
    if decision != Correction.Status.REJECTED:
        if final_value is UNSET:
            value = correction.new_value
        else:
            value = clean_field_value(correction.field, final_value)

    transition_correction(correction, decision)
    correction.reviewed_by = reviewer
    correction.reviewed_by_name = reviewer.display_name
    correction.reviewed_at = timezone.now()
    correction.review_notes = notes
    correction.final_value = None if final_value is UNSET else value
    correction.save(
        update_fields=[
            "status",
            "reviewed_by",
            "reviewed_by_name",
            "reviewed_at",
            "review_notes",
            "final_value",
        ]
    )

    if decision == Correction.Status.REJECTED:
        increment_counter(user_id=correction.submitted_by_id, field="rejected_count")
        action = ReviewerAction.Action.REJECT
    else:
        _apply_to_game(correction=correction, reviewer=reviewer, value=value, notes=notes)
        increment_counter(user_id=correction.submitted_by_id, field="approved_count")
        action = ReviewerAction.Action.APPROVE

    ReviewerAction.objects.create(
        reviewer=reviewer,
        reviewer_name=reviewer.display_name,
        correction=correction,
        action=action,
    )
    logger.info(
        "Correction %s %s by reviewer %s",
        correction.id,
        decision,
        reviewer.pk,
    )

    if notify:
        message_ids = correction.discord_message_ids or []
        enqueue_review_batch(
            corrections=message_batch([correction], message_ids),
            message_ids=message_ids,
        )
    return correction


def _apply_to_game(*, correction, reviewer, value, notes):
    game = Game.objects.select_for_update().get(pk=correction.game_id)
    apply_field_change(
        game=game,
        field=correction.field,
        value=value,
        update_type=GameUpdate.UpdateType.CORRECTION,
        submitter=correction.submitted_by,
        reviewer=reviewer,
        notes=notes,
    )
    AuditLog.objects.create(
        game=game,
        game_slug=correction.game_slug,
        game_title=correction.game_title,
        field=correction.field,
        old_value=correction.old_value,
        new_value=value,
        changed_by=reviewer,
        changed_by_name=reviewer.display_name,
        changed_by_role=reviewer.role,
        correction=correction,
        notes=notes,
        submitted_by=correction.submitted_by,
        submitted_by_name=correction.submitted_by_name,
    )


def approve_correction(*, correction_id, reviewer, notes="", final_value=UNSET):
    return review_correction(
        correction_id=correction_id,
        reviewer=reviewer,
        decision=Correction.Status.APPROVED,
        notes=notes,
        final_value=final_value,
    )


def reject_correction(*, correction_id, reviewer, notes=""):
    return review_correction(
        correction_id=correction_id,
        reviewer=reviewer,
        decision=Correction.Status.REJECTED,
        notes=notes,
    )


# ============================================================
# BATCH REVIEW
# ============================================================

def _parse_uuid(value):
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def shared_message_ids(corrections):
    """
    Message ids to edit in place, only when every correction carries the
    same ones. Otherwise a fresh message is sent.
    """

    id_lists = [list(c.discord_message_ids or []) for c in corrections]
    if not id_lists or not id_lists[0]:
        return []
    if any(ids != id_lists[0] for ids in id_lists[1:]):
        return []
    return id_lists[0]


def message_batch(corrections, message_ids):
    """
    Every correction shown in the message being edited: the given ones
    plus siblings from the same submission batch that carry the same ids.
    Superseded rows share the ids but are not shown.
    """

    corrections = list(corrections)
    message_ids = list(message_ids or [])
    if not corrections or not any(message_ids):
        return corrections

    first = corrections[0]
    listed = {c.pk for c in corrections}
    siblings = [
        c
        for c in Correction.objects.filter(
            game_slug=first.game_slug,
            submitted_by_id=first.submitted_by_id,
        ).exclude(status=Correction.Status.SUPERSEDED)
        if c.pk not in listed and list(c.discord_message_ids or []) == message_ids
    ]
    return sorted(corrections + siblings, key=lambda c: c.submitted_at)


def review_batch(*, reviewer, reviews):
    """
    Review several corrections in one request.

    Each item commits on its own. Invalid items are skipped and logged,
    and one notification covers everything that was reviewed.
    Returns ``(reviewed, skipped)``.
    """

    _require_reviewer(reviewer)
    if not isinstance(reviews, list) or not reviews:
        raise ValidationError("Reviews array is required and must not be empty")

    requested_ids = [
        parsed
        for parsed in (_parse_uuid(item.get("correctionId")) for item in reviews if isinstance(item, dict))
        if parsed
    ]
    message_ids = shared_message_ids(Correction.objects.filter(pk__in=requested_ids))

    reviewed = []
    skipped = []
    for item in reviews:
        if not isinstance(item, dict):
            logger.warning("Skipping malformed review item: %r", item)
            skipped.append({"correctionId": None, "detail": "Malformed review item."})
            continue

        correction_id = _parse_uuid(item.get("correctionId"))
        decision = sanitize_string(str(item.get("status") or ""), 50)
        if not correction_id or not decision:
            logger.warning("Skipping review with missing fields: %r", item)
            skipped.append({"correctionId": item.get("correctionId"), "detail": "Missing required fields"})
            continue

        kwargs = {}
        if "finalValue" in item:
            kwargs["final_value"] = item["finalValue"]

        try:
            correction = review_correction(
                correction_id=correction_id,
                reviewer=reviewer,
                decision=decision,
                notes=sanitize_string(str(item.get("reviewNotes") or ""), 2000),
                notify=False,
                **kwargs,
            )
        except Correction.DoesNotExist:
            logger.warning("Skipping review, correction not found: %s", correction_id)
            skipped.append({"correctionId": str(correction_id), "detail": "Correction not found"})
            continue
        except PermissionDenied as exc:
            logger.warning("Skipping review of %s: %s", correction_id, exc)
            skipped.append({"correctionId": str(correction_id), "detail": str(exc)})
            continue
        except ValidationError as exc:
            logger.warning("Skipping review of %s: %s", correction_id, exc.messages[0])
            skipped.append({"correctionId": str(correction_id), "detail": exc.messages[0]})
            continue

        reviewed.append(correction)

    if reviewed:
        enqueue_review_batch(
            corrections=message_batch(reviewed, message_ids),
            message_ids=message_ids,
        )
    return reviewed, skipped


# ============================================================
# AUDIT LOG AND STATS
# ============================================================

def audit_logs(*, game_slug="", limit=None):
    logs = AuditLog.objects.all()
    if game_slug:
        logs = logs.filter(game_slug=game_slug)
    limit = min(limit or settings.AUDIT_LOG_LIST_LIMIT, settings.AUDIT_LOG_LIST_LIMIT)
    return logs.order_by("-changed_at")[:limit]


def dashboard_stats():
    users = User.objects.aggregate(
        total=Count("id"),
        active=Count("id", filter=Q(status=User.Status.ACTIVE)),
        suspended=Count("id", filter=Q(status=User.Status.SUSPENDED)),
        blocked=Count("id", filter=Q(status=User.Status.BLOCKED)),
    )
    corrections = Correction.objects.aggregate(
        total=Count("id"),
        pending=Count("id", filter=Q(status=Correction.Status.PENDING)),
        approved=Count("id", filter=Q(status=Correction.Status.APPROVED)),
        modified=Count("id", filter=Q(status=Correction.Status.MODIFIED)),
        rejected=Count("id", filter=Q(status=Correction.Status.REJECTED)),
        superseded=Count("id", filter=Q(status=Correction.Status.SUPERSEDED)),
    )
    return {
        "totalUsers": users["total"],
        "activeUsers": users["active"],
        "suspendedUsers": users["suspended"],
        "blockedUsers": users["blocked"],
        "totalSubmissions": corrections["total"],
        "pendingSubmissions": corrections["pending"],
        "approvedSubmissions": corrections["approved"],
        "modifiedSubmissions": corrections["modified"],
        "rejectedSubmissions": corrections["rejected"],
        "supersededSubmissions": corrections["superseded"],
        "totalChanges": AuditLog.objects.count(),
        "failedNotifications": NotificationEvent.objects.filter(
            status=NotificationEvent.Status.FAILED
        ).count(),
    }
