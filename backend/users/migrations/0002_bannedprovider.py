import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("users", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="BannedProvider",
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
                (
                    "provider",
                    models.CharField(
                        choices=[
                            ("github", "GitHub"),
                            ("discord", "Discord"),
                            ("google", "Google"),
                        ],
                        max_length=50,
                    ),
                ),
                ("provider_account_id", models.CharField(max_length=255)),
                ("user_name", models.CharField(blank=True, default="", max_length=255)),
                ("reason", models.TextField()),
                ("notes", models.TextField(blank=True, default="")),
                ("banned_by_name", models.CharField(max_length=255)),
                ("banned_at", models.DateTimeField(auto_now_add=True)),
                (
                    "banned_by",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="provider_bans_issued",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="provider_bans",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-banned_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "provider_account_id"),
                        name="unique_banned_provider_account",
                    ),
                ],
            },
        ),
    ]
