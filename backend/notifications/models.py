import uuid

from django.db import models

from corrections.models import Correction


class NotificationEvent(models.Model):
    """
    Outbox row for one Discord message (sent or edited in place).

    Delivery is attempted right after the creating transaction commits and
    retried by ``manage.py deliver_notifications`` with backoff.
    """

    class Kind(models.TextChoices):
        CORRECTION_SUBMITTED = "correction_submitted", "Correction Submitted"
        CORRECTIONS_REVIEWED = "corrections_reviewed", "Corrections Reviewed"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        DELIVERED = "delivered", "Delivered"
        FAILED = "failed", "Failed"
        # Replaced by a newer submission message covering the same corrections.
        CANCELLED = "cancelled", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    kind = models.CharField(max_length=32, choices=Kind.choices)
    # Shown in the message.
    corrections = models.ManyToManyField(Correction, related_name="notification_events")
    # Not shown, but receive the same message ids (superseded corrections).
    linked_corrections = models.ManyToManyField(
        Correction,
        blank=True,
        related_name="linked_notification_events",
    )
    # One slot per webhook URL. A slot with an id is edited, an empty one is sent.
    message_ids = models.JSONField(default=list, blank=True)

    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    attempts = models.PositiveIntegerField(default=0)
    next_attempt_at = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["status", "next_attempt_at"], name="notification_due_idx"),
        ]

    def __str__(self):
        return f"{self.kind} ({self.status}, attempts={self.attempts})"
