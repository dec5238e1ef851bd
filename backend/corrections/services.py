"""
corrections/services.py

Correction store and the submission resolver.

A new correction is related to the submitter's other pending corrections for
the same game inside a rolling merge window:
- same field as the newest one (the anchor): older pending ones for that
  field are superseded
- different field: nothing is superseded, the new one joins the batch
- no anchor: the correction stands alone

Anchor lookup, superseding and the insert run in one transaction with the
submitter row locked, so two submissions from the same user are serialized.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.utils import timezone

from corrections.models import Correction
from corrections.state_machine import transition_correction
from corrections.validation import validate_submission
from games.models import Game
from notifications.services import enqueue_correction_batch
from users.services import can_submit_corrections, increment_counter

logger = logging.getLogger(__name__)

User = get_user_model()

SUPERSEDED_NOTE = "Superseded by a newer correction for the same field."


# ============================================================
# QUERIES
# ============================================================

def merge_window_start(now=None):
    now = now or timezone.now()
    return now - timedelta(minutes=settings.CORRECTION_MERGE_WINDOW_MINUTES)


def pending_in_window(*, game_slug, submitter, now=None, field=None):
    """
    Pending corrections for (game, submitter) inside the merge window.

    The window is computed from ``now`` on every call, so two calls a few
    seconds apart can disagree at the boundary.
    """

    corrections = Correction.objects.filter(
        game_slug=game_slug,
        submitted_by=submitter,
        status=Correction.Status.PENDING,
        submitted_at__gte=merge_window_start(now),
    )
    if field:
        corrections = corrections.filter(field=field)
    return corrections.order_by("-submitted_at")


def find_anchor(*, game_slug, submitter, now=None):
    return pending_in_window(game_slug=game_slug, submitter=submitter, now=now).first()


def corrections_for_user(user):
    return Correction.objects.filter(submitted_by=user).order_by("-submitted_at")


def filter_corrections(*, status="", game_slug="", user_id=None, limit=None):
    """
    Moderation listing. The pending queue is oldest first, everything else
    newest first. Capped at ``CORRECTIONS_LIST_LIMIT`` by default.
    """

    corrections = Correction.objects.all()
    if status:
        corrections = corrections.filter(status=status)
    if game_slug:
        corrections = corrections.filter(game_slug=game_slug)
    if user_id is not None:
        corrections = corrections.filter(submitted_by_id=user_id)

    if status == Correction.Status.PENDING:
        corrections = corrections.order_by("submitted_at")
    else:
        corrections = corrections.order_by("-submitted_at")
    return corrections[: limit or settings.CORRECTIONS_LIST_LIMIT]


# ============================================================
# SUBMISSION
# ============================================================

def _supersede_same_field(*, game_slug, submitter, field, now):
    superseded = []
    for correction in pending_in_window(
        game_slug=game_slug,
        submitter=submitter,
        now=now,
        field=field,
    ).select_for_update():
        transition_correction(correction, Correction.Status.SUPERSEDED)
        correction.reviewed_at = now
        correction.review_notes = SUPERSEDED_NOTE
        superseded.append(correction)

    Correction.objects.bulk_update(superseded, ["status", "reviewed_at", "review_notes"])
    return superseded


@transaction.atomic
def submit_correction(*, submitter, payload):
    """
    Validate, resolve against recent pending corrections and store.

    Raises ``PermissionDenied`` for accounts that may not submit,
    ``ValidationError`` for bad payloads and ``Game.DoesNotExist`` when the
    slug is unknown. The notification is queued to run after commit.
    """

    submitter = User.objects.select_for_update().get(pk=submitter.pk)
    if not can_submit_corrections(submitter):
        raise PermissionDenied("Your account is suspended or blocked")

    data = validate_submission(payload)

    game = Game.objects.get(slug=data["game_slug"])
    if str(game.id) != data["game_id"]:
        raise ValidationError("gameId does not match gameSlug.")

    now = timezone.now()
    anchor = find_anchor(game_slug=game.slug, submitter=submitter, now=now)

    superseded = []
    if anchor and anchor.field == data["field"]:
        superseded = _supersede_same_field(
            game_slug=game.slug,
            submitter=submitter,
            field=data["field"],
            now=now,
        )

    correction = Correction.objects.create(
        game=game,
        game_slug=game.slug,
        game_title=data["game_title"] or game.title,
        submitted_by=submitter,
        submitted_by_name=submitter.display_name,
        submitted_at=now,
        field=data["field"],
        old_value=data["old_value"],
        new_value=data["new_value"],
        reason=data["reason"],
    )
    increment_counter(user_id=submitter.pk, field="submissions_count")

    if anchor:
        batch = list(
            pending_in_window(game_slug=game.slug, submitter=submitter, now=now).order_by("submitted_at")
        )
        message_ids = anchor.discord_message_ids or []
    else:
        batch = [correction]
        message_ids = []

    logger.info(
        "Correction %s submitted: game=%s field=%s anchor=%s superseded=%s batch=%s",
        correction.id,
        game.slug,
        correction.field,
        anchor.id if anchor else None,
        len(superseded),
        len(batch),
    )

    enqueue_correction_batch(
        corrections=batch,
        message_ids=message_ids,
        superseded=superseded,
    )
    return correction
