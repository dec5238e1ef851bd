from django.contrib import admin

from .models import Game, GameUpdate


@admin.register(Game)
class GameAdmin(admin.ModelAdmin):
    list_display = ("title", "slug", "status", "activation_type", "feature_enabled")
    list_filter = ("status", "feature_enabled")
    search_fields = ("title", "slug")
    readonly_fields = ("published_at", "published_by", "created_at", "updated_at")


@admin.register(GameUpdate)
class GameUpdateAdmin(admin.ModelAdmin):
    """
    Read-only change history.
    """

    list_display = ("game", "field", "update_type", "reviewer_name", "created_at")
    readonly_fields = (
        "game",
        "field",
        "update_type",
        "submitter",
        "submitter_name",
        "reviewer",
        "reviewer_name",
        "notes",
        "created_at",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
