"""
games/services.py

Everything that writes to a live Game goes through here so the change
history stays complete.
"""

import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from corrections.validation import clean_field_value
from games.fields import PUBLISH_REQUIRED_FIELDS, attribute_for, empty_value, is_empty
from games.models import Game, GameUpdate
from reviews.models import AuditLog

logger = logging.getLogger(__name__)


def get_field_value(game: Game, field):
    return getattr(game, attribute_for(field))


def apply_field_change(
    *,
    game: Game,
    field,
    value,
    update_type,
    submitter=None,
    reviewer=None,
    notes="",
):
    """
    Write one field and record it in the game's update history.

    ``None``, ``""`` and ``[]`` clear the field.
    """

    attribute = attribute_for(field)
    clearing = is_empty(value)
    setattr(game, attribute, empty_value(field) if clearing else value)
    game.save(update_fields=[attribute, "updated_at"])

    GameUpdate.objects.create(
        game=game,
        field=field,
        update_type=update_type,
        submitter=submitter,
        submitter_name=submitter.display_name if submitter else "",
        reviewer=reviewer,
        reviewer_name=reviewer.display_name if reviewer else "",
        notes=notes or ("Field cleared" if clearing else ""),
    )
    return game


def missing_publish_fields(game: Game):
    return [
        field
        for field in PUBLISH_REQUIRED_FIELDS
        if is_empty(get_field_value(game, field))
    ]


@transaction.atomic
def publish_game(*, game: Game, admin):
    missing = missing_publish_fields(game)
    if missing:
        raise ValidationError(
            "Game does not have the minimum required fields to be published: "
            + ", ".join(missing)
        )

    game.feature_enabled = True
    game.published_at = timezone.now()
    game.published_by = admin
    game.save(update_fields=["feature_enabled", "published_at", "published_by", "updated_at"])

    GameUpdate.objects.create(
        game=game,
        update_type=GameUpdate.UpdateType.PUBLISH,
        reviewer=admin,
        reviewer_name=admin.display_name,
        notes="Game published",
    )
    logger.info("Game %s published by %s", game.slug, admin.pk)
    return game


@transaction.atomic
def admin_edit_game(*, game: Game, admin, changes, notes=""):
    """
    Direct admin edit of one or more fields.

    Every changed field gets an AuditLog entry with no correction attached.
    Unchanged fields are skipped.
    """

    if not changes:
        raise ValidationError("No changes provided.")

    cleaned = {field: clean_field_value(field, value) for field, value in changes.items()}

    logs = []
    for field, value in cleaned.items():
        old_value = get_field_value(game, field)
        new_value = empty_value(field) if value is None else value
        if old_value == new_value:
            continue

        apply_field_change(
            game=game,
            field=field,
            value=value,
            update_type=GameUpdate.UpdateType.ADMIN_EDIT,
            reviewer=admin,
            notes=notes,
        )
        logs.append(
            AuditLog.objects.create(
                game=game,
                game_slug=game.slug,
                game_title=game.title,
                field=field,
                old_value=old_value,
                new_value=value,
                changed_by=admin,
                changed_by_name=admin.display_name,
                changed_by_role=admin.role,
                notes=notes,
            )
        )

    logger.info("Admin %s edited %s field(s) on %s", admin.pk, len(logs), game.slug)
    return logs
