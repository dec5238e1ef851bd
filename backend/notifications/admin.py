from django.contrib import admin

from .models import NotificationEvent


@admin.register(NotificationEvent)
class NotificationEventAdmin(admin.ModelAdmin):
    """
    Outbox inspection. Failed events are visible here and in dashboard stats.
    """

    list_display = ("kind", "status", "attempts", "next_attempt_at", "created_at")
    list_filter = ("kind", "status")
    readonly_fields = (
        "kind",
        "corrections",
        "linked_corrections",
        "message_ids",
        "status",
        "attempts",
        "next_attempt_at",
        "last_error",
        "created_at",
        "delivered_at",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
