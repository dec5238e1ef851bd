import uuid

from django.conf import settings
from django.db import models


class Game(models.Model):
    class Status(models.TextChoices):
        SUPPORTED = "supported", "Supported"
        TESTING = "testing", "Testing"
        UNSUPPORTED = "unsupported", "Unsupported"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    slug = models.SlugField(max_length=255, unique=True)

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    release_date = models.CharField(max_length=100, blank=True, default="")
    developer = models.CharField(max_length=255, blank=True, default="")
    publisher = models.CharField(max_length=255, blank=True, default="")
    genres = models.JSONField(default=list, blank=True)
    platforms = models.JSONField(default=list, blank=True)

    activation_type = models.CharField(max_length=100)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.TESTING)
    image_url = models.URLField(max_length=500, blank=True, default="")

    instructions = models.JSONField(default=list, blank=True)
    known_issues = models.JSONField(default=list, blank=True)
    community_tips = models.JSONField(default=list, blank=True)

    discord_link = models.URLField(max_length=500, blank=True, default="")
    reddit_link = models.URLField(max_length=500, blank=True, default="")
    wiki_link = models.URLField(max_length=500, blank=True, default="")
    steamdb_link = models.URLField(max_length=500, blank=True, default="")
    purchase_link = models.URLField(max_length=500, blank=True, default="")
    gog_dreamlist_link = models.URLField(max_length=500, blank=True, default="")
    download_link = models.URLField(max_length=500, blank=True, default="")

    additional_drm = models.CharField(max_length=255, blank=True, default="")
    playability_status = models.CharField(max_length=100, blank=True, default="")
    is_unplayable = models.BooleanField(default=False)

    community_alternative_name = models.CharField(max_length=255, blank=True, default="")
    community_alternative_url = models.URLField(max_length=500, blank=True, default="")
    community_alternative_download_link = models.URLField(
        max_length=500,
        blank=True,
        default="",
    )
    remastered_name = models.CharField(max_length=255, blank=True, default="")
    remastered_platform = models.CharField(max_length=255, blank=True, default="")

    feature_enabled = models.BooleanField(default=False)
    published_at = models.DateTimeField(null=True, blank=True)
    published_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="games_published",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["title"]

    def __str__(self):
        return self.title


class GameUpdate(models.Model):
    """Per-game change history shown on the game page."""

    class UpdateType(models.TextChoices):
        CORRECTION = "correction", "Correction"
        ADMIN_EDIT = "adminEdit", "Admin Edit"
        PUBLISH = "publish", "Publish"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    game = models.ForeignKey(Game, on_delete=models.CASCADE, related_name="updates")
    field = models.CharField(max_length=64, blank=True, default="")
    update_type = models.CharField(max_length=20, choices=UpdateType.choices)

    submitter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="game_updates_submitted",
    )
    submitter_name = models.CharField(max_length=255, blank=True, default="")
    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="game_updates_reviewed",
    )
    reviewer_name = models.CharField(max_length=255, blank=True, default="")

    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.game_id}:{self.update_type}:{self.field}"
