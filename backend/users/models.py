import uuid

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models


def default_user_settings():
    return {"publicProfile": True, "showStatistics": True}


class User(AbstractUser):
    class Role(models.TextChoices):
        USER = "user", "User"
        REVIEWER = "reviewer", "Reviewer"
        ADMIN = "admin", "Admin"

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        SUSPENDED = "suspended", "Suspended"
        RESTRICTED = "restricted", "Restricted"
        BLOCKED = "blocked", "Blocked"
        DELETED = "deleted", "Deleted"

    name = models.CharField(max_length=255, blank=True, default="")
    avatar = models.URLField(max_length=500, blank=True, default="")

    role = models.CharField(max_length=10, choices=Role.choices, default=Role.USER)
    status = models.CharField(
        max_length=12,
        choices=Status.choices,
        default=Status.ACTIVE,
        blank=True,
    )
    suspended_until = models.DateTimeField(null=True, blank=True)

    provider = models.CharField(max_length=50, blank=True, default="")
    provider_account_id = models.CharField(max_length=255, blank=True, default="")

    # Only ever changed through users.services.increment_counter.
    submissions_count = models.PositiveIntegerField(default=0)
    approved_count = models.PositiveIntegerField(default=0)
    rejected_count = models.PositiveIntegerField(default=0)

    settings = models.JSONField(default=default_user_settings, blank=True)

    deleted_at = models.DateTimeField(null=True, blank=True)
    archived_name = models.CharField(max_length=255, blank=True, default="")
    archived_avatar = models.URLField(max_length=500, blank=True, default="")

    updated_at = models.DateTimeField(auto_now=True)

    @property
    def display_name(self):
        return self.name or self.username

    @property
    def reviewed_count(self):
        return self.approved_count + self.rejected_count

    @property
    def approval_rate(self):
        """Percentage of reviewed corrections that were approved."""
        if not self.reviewed_count:
            return 0
        return round(self.approved_count / self.reviewed_count * 100)

    def __str__(self):
        return self.display_name


class ModerationAction(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="moderation_history",
    )
    moderator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="moderation_actions_taken",
    )
    moderator_name = models.CharField(max_length=255)

    action = models.CharField(max_length=255)
    reason = models.TextField(blank=True, default="")

    previous_role = models.CharField(max_length=10, blank=True, default="")
    new_role = models.CharField(max_length=10, blank=True, default="")
    previous_status = models.CharField(max_length=12, blank=True, default="")
    new_status = models.CharField(max_length=12, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.user_id}:{self.action}"


class BannedProvider(models.Model):
    """
    A sign-in provider account that may never sign in again, even after the
    local account is deleted and recreated.
    """

    class Provider(models.TextChoices):
        GITHUB = "github", "GitHub"
        DISCORD = "discord", "Discord"
        GOOGLE = "google", "Google"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    provider = models.CharField(max_length=50, choices=Provider.choices)
    provider_account_id = models.CharField(max_length=255)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="provider_bans",
    )
    user_name = models.CharField(max_length=255, blank=True, default="")

    reason = models.TextField()
    notes = models.TextField(blank=True, default="")

    banned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="provider_bans_issued",
    )
    banned_by_name = models.CharField(max_length=255)
    banned_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-banned_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "provider_account_id"],
                name="unique_banned_provider_account",
            ),
        ]

    def __str__(self):
        return f"{self.provider}:{self.provider_account_id}"
