import uuid

from django.conf import settings
from django.db import models


class ReviewerApplication(models.Model):
    """
    A user's request to become a reviewer. Applicant name and email are
    copied at submission so the admin queue reads without joins.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="reviewer_applications",
    )
    user_name = models.CharField(max_length=255)
    user_email = models.EmailField(blank=True, default="")

    motivation_text = models.TextField()
    experience_text = models.TextField()
    contribution_examples = models.TextField()
    time_availability = models.CharField(max_length=500, blank=True, default="")
    languages = models.CharField(max_length=200, blank=True, default="")
    prior_experience = models.TextField(blank=True, default="")
    agreed_to_rules = models.BooleanField(default=False)

    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)

    admin = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewer_applications_decided",
    )
    admin_name = models.CharField(max_length=255, blank=True, default="")
    admin_notes = models.TextField(blank=True, default="")
    decision_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "status"], name="application_user_status_idx"),
        ]

    def __str__(self):
        return f"{self.user_name} ({self.status})"
