import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("games", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Correction",
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
                ("game_slug", models.SlugField(max_length=255)),
                ("game_title", models.CharField(max_length=255)),
                ("submitted_by_name", models.CharField(max_length=255)),
                ("submitted_at", models.DateTimeField()),
                (
                    "field",
                    models.CharField(
                        choices=[
                            ("title", "title"),
                            ("description", "description"),
                            ("releaseDate", "releaseDate"),
                            ("developer", "developer"),
                            ("publisher", "publisher"),
                            ("genres", "genres"),
                            ("platforms", "platforms"),
                            ("activationType", "activationType"),
                            ("status", "status"),
                            ("imageUrl", "imageUrl"),
                            ("instructions", "instructions"),
                            ("knownIssues", "knownIssues"),
                            ("communityTips", "communityTips"),
                            ("discordLink", "discordLink"),
                            ("redditLink", "redditLink"),
                            ("wikiLink", "wikiLink"),
                            ("steamDBLink", "steamDBLink"),
                            ("purchaseLink", "purchaseLink"),
                            ("gogDreamlistLink", "gogDreamlistLink"),
                            ("downloadLink", "downloadLink"),
                            ("additionalDRM", "additionalDRM"),
                            ("playabilityStatus", "playabilityStatus"),
                            ("isUnplayable", "isUnplayable"),
                            ("communityAlternativeName", "communityAlternativeName"),
                            ("communityAlternativeUrl", "communityAlternativeUrl"),
                            ("communityAlternativeDownloadLink", "communityAlternativeDownloadLink"),
                            ("remasteredName", "remasteredName"),
                            ("remasteredPlatform", "remasteredPlatform"),
                        ],
                        max_length=64,
                    ),
                ),
                ("old_value", models.JSONField(blank=True, null=True)),
                ("new_value", models.JSONField(blank=True, null=True)),
                ("reason", models.TextField()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                            ("superseded", "Superseded"),
                            ("modified", "Approved with Changes"),
                        ],
                        default="pending",
                        max_length=12,
                    ),
                ),
                ("reviewed_by_name", models.CharField(blank=True, default="", max_length=255)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("review_notes", models.TextField(blank=True, default="")),
                ("final_value", models.JSONField(blank=True, null=True)),
                ("discord_message_ids", models.JSONField(blank=True, default=list)),
                (
                    "game",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="corrections",
                        to="games.game",
                    ),
                ),
                (
                    "reviewed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="corrections_reviewed",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "submitted_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="corrections",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-submitted_at"],
                "indexes": [
                    models.Index(
                        fields=["game_slug", "submitted_by", "status", "submitted_at"],
                        name="correction_window_idx",
                    ),
                    models.Index(
                        fields=["status", "submitted_at"],
                        name="correction_status_idx",
                    ),
                ],
            },
        ),
    ]
