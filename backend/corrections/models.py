import uuid

from django.conf import settings
from django.db import models

from games.fields import FIELD_CHOICES
from games.models import Game


class Correction(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"
        SUPERSEDED = "superseded", "Superseded"
        MODIFIED = "modified", "Approved with Changes"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    game = models.ForeignKey(Game, on_delete=models.PROTECT, related_name="corrections")
    # Denormalized for listings and notifications.
    game_slug = models.SlugField(max_length=255)
    game_title = models.CharField(max_length=255)

    submitted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="corrections",
    )
    submitted_by_name = models.CharField(max_length=255)
    submitted_at = models.DateTimeField()

    field = models.CharField(max_length=64, choices=FIELD_CHOICES)
    old_value = models.JSONField(null=True, blank=True)
    # null means "clear this field"
    new_value = models.JSONField(null=True, blank=True)
    reason = models.TextField()

    status = models.CharField(
        max_length=12,
        choices=Status.choices,
        default=Status.PENDING,
    )

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="corrections_reviewed",
    )
    reviewed_by_name = models.CharField(max_length=255, blank=True, default="")
    reviewed_at = models.DateTimeField(null=True, blank=True)
    review_notes = models.TextField(blank=True, default="")
    final_value = models.JSONField(null=True, blank=True)

    # One slot per configured webhook, None where a send failed.
    discord_message_ids = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["-submitted_at"]
        indexes = [
            models.Index(
                fields=["game_slug", "submitted_by", "status", "submitted_at"],
                name="correction_window_idx",
            ),
            models.Index(fields=["status", "submitted_at"], name="correction_status_idx"),
        ]

    def __str__(self):
        return f"{self.game_slug}:{self.field} ({self.status})"
