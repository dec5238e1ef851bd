import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Game",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("slug", models.SlugField(max_length=255, unique=True)),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("release_date", models.CharField(blank=True, default="", max_length=100)),
                ("developer", models.CharField(blank=True, default="", max_length=255)),
                ("publisher", models.CharField(blank=True, default="", max_length=255)),
                ("genres", models.JSONField(blank=True, default=list)),
                ("platforms", models.JSONField(blank=True, default=list)),
                ("activation_type", models.CharField(max_length=100)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("supported", "Supported"),
                            ("testing", "Testing"),
                            ("unsupported", "Unsupported"),
                        ],
                        default="testing",
                        max_length=20,
                    ),
                ),
                ("image_url", models.URLField(blank=True, default="", max_length=500)),
                ("instructions", models.JSONField(blank=True, default=list)),
                ("known_issues", models.JSONField(blank=True, default=list)),
                ("community_tips", models.JSONField(blank=True, default=list)),
                ("discord_link", models.URLField(blank=True, default="", max_length=500)),
                ("reddit_link", models.URLField(blank=True, default="", max_length=500)),
                ("wiki_link", models.URLField(blank=True, default="", max_length=500)),
                ("steamdb_link", models.URLField(blank=True, default="", max_length=500)),
                ("purchase_link", models.URLField(blank=True, default="", max_length=500)),
                ("gog_dreamlist_link", models.URLField(blank=True, default="", max_length=500)),
                ("download_link", models.URLField(blank=True, default="", max_length=500)),
                ("additional_drm", models.CharField(blank=True, default="", max_length=255)),
                ("playability_status", models.CharField(blank=True, default="", max_length=100)),
                ("is_unplayable", models.BooleanField(default=False)),
                (
                    "community_alternative_name",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                (
                    "community_alternative_url",
                    models.URLField(blank=True, default="", max_length=500),
                ),
                (
                    "community_alternative_download_link",
                    models.URLField(blank=True, default="", max_length=500),
                ),
                ("remastered_name", models.CharField(blank=True, default="", max_length=255)),
                ("remastered_platform", models.CharField(blank=True, default="", max_length=255)),
                ("feature_enabled", models.BooleanField(default=False)),
                ("published_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "published_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="games_published",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["title"],
            },
        ),
        migrations.CreateModel(
            name="GameUpdate",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("field", models.CharField(blank=True, default="", max_length=64)),
                (
                    "update_type",
                    models.CharField(
                        choices=[
                            ("correction", "Correction"),
                            ("adminEdit", "Admin Edit"),
                            ("publish", "Publish"),
                        ],
                        max_length=20,
                    ),
                ),
                ("submitter_name", models.CharField(blank=True, default="", max_length=255)),
                ("reviewer_name", models.CharField(blank=True, default="", max_length=255)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "game",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="updates",
                        to="games.game",
                    ),
                ),
                (
                    "reviewer",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="game_updates_reviewed",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "submitter",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="game_updates_submitted",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
