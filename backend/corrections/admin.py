from django.contrib import admin

from .models import Correction


@admin.register(Correction)
class CorrectionAdmin(admin.ModelAdmin):
    """
    Admin inspection only.
    Status changes go through the review workflow.
    """

    list_display = ("game_slug", "field", "submitted_by_name", "status", "submitted_at")
    list_filter = ("status", "field")
    search_fields = ("game_slug", "game_title", "submitted_by_name")
    readonly_fields = (
        "game",
        "game_slug",
        "game_title",
        "submitted_by",
        "submitted_by_name",
        "submitted_at",
        "field",
        "old_value",
        "new_value",
        "reason",
        "status",
        "reviewed_by",
        "reviewed_by_name",
        "reviewed_at",
        "review_notes",
        "final_value",
        "discord_message_ids",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
