from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import BannedProvider, ModerationAction, User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    list_display = (
        "username",
        "email",
        "role",
        "status",
        "submissions_count",
        "approved_count",
        "rejected_count",
    )
    list_filter = ("role", "status")
    fieldsets = DjangoUserAdmin.fieldsets + (
        (
            "GFWL Hub",
            {
                "fields": (
                    "name",
                    "avatar",
                    "role",
                    "status",
                    "suspended_until",
                    "settings",
                    "deleted_at",
                    "archived_name",
                )
            },
        ),
    )
    # Counters move only with correction lifecycle events.
    readonly_fields = ("submissions_count", "approved_count", "rejected_count")


@admin.register(ModerationAction)
class ModerationActionAdmin(admin.ModelAdmin):
    """
    Read-only moderation history.
    Changes go through the users API so every one is recorded.
    """

    list_display = ("user", "action", "moderator_name", "created_at")
    readonly_fields = (
        "user",
        "moderator",
        "moderator_name",
        "action",
        "reason",
        "previous_role",
        "new_role",
        "previous_status",
        "new_status",
        "created_at",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(BannedProvider)
class BannedProviderAdmin(admin.ModelAdmin):
    """Bans are issued through the users API; the list is read-only here."""

    list_display = ("provider", "provider_account_id", "user_name", "banned_by_name", "banned_at")
    list_filter = ("provider",)
    search_fields = ("provider_account_id", "user_name")
    readonly_fields = (
        "provider",
        "provider_account_id",
        "user",
        "user_name",
        "reason",
        "notes",
        "banned_by",
        "banned_by_name",
        "banned_at",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
