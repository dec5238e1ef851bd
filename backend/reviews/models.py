import uuid

from django.conf import settings
from django.db import models

from corrections.models import Correction
from games.models import Game


class AuditLog(models.Model):
    """
    Immutable record of a change applied to a live game.

    Written when a correction is approved (``correction`` set) or when an
    admin edits a game directly (``correction`` empty).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    game = models.ForeignKey(Game, on_delete=models.PROTECT, related_name="audit_logs")
    game_slug = models.SlugField(max_length=255)
    game_title = models.CharField(max_length=255)

    field = models.CharField(max_length=64)
    old_value = models.JSONField(null=True, blank=True)
    new_value = models.JSONField(null=True, blank=True)

    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="audit_logs_changed",
    )
    changed_by_name = models.CharField(max_length=255)
    changed_by_role = models.CharField(max_length=10)

    correction = models.ForeignKey(
        Correction,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    notes = models.TextField(blank=True, default="")

    submitted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs_submitted",
    )
    submitted_by_name = models.CharField(max_length=255, blank=True, default="")

    changed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-changed_at"]
        constraints = [
            models.UniqueConstraint(
                fields=("correction",),
                condition=models.Q(correction__isnull=False),
                name="uniq_audit_log_per_correction",
            ),
        ]

    def __str__(self):
        return f"{self.game_slug}:{self.field}"


class ReviewerAction(models.Model):
    class Action(models.TextChoices):
        APPROVE = "approve", "Approve"
        REJECT = "reject", "Reject"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="reviewer_actions",
    )
    reviewer_name = models.CharField(max_length=255)
    correction = models.ForeignKey(
        Correction,
        on_delete=models.CASCADE,
        related_name="reviewer_actions",
    )
    action = models.CharField(max_length=10, choices=Action.choices)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.reviewer_name} → {self.action}"
