from django.contrib import admin
from .models import AuditLog, ReviewerAction


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    """
    Read-only audit trail of applied game changes.
    """

    list_display = (
        "game_slug",
        "field",
        "changed_by_name",
        "changed_by_role",
        "changed_at",
    )
    list_filter = ("field", "changed_by_role")
    search_fields = ("game_slug", "game_title")
    readonly_fields = (
        "game",
        "game_slug",
        "game_title",
        "field",
        "old_value",
        "new_value",
        "changed_by",
        "changed_by_name",
        "changed_by_role",
        "correction",
        "notes",
        "submitted_by",
        "submitted_by_name",
        "changed_at",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ReviewerAction)
class ReviewerActionAdmin(admin.ModelAdmin):
    """
    Read-only log of reviewer decisions.
    """

    list_display = ("reviewer_name", "action", "correction", "created_at")
    readonly_fields = ("reviewer", "reviewer_name", "correction", "action", "created_at")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
