from django.contrib import admin

from .models import ReviewerApplication


@admin.register(ReviewerApplication)
class ReviewerApplicationAdmin(admin.ModelAdmin):
    """
    Read-only queue. Decisions go through the applications API so the
    role change is recorded in the moderation history.
    """

    list_display = ("user_name", "status", "created_at", "admin_name", "decision_at")
    list_filter = ("status",)
    search_fields = ("user_name", "user_email")
    readonly_fields = (
        "user",
        "user_name",
        "user_email",
        "motivation_text",
        "experience_text",
        "contribution_examples",
        "time_availability",
        "languages",
        "prior_experience",
        "agreed_to_rules",
        "status",
        "created_at",
        "admin",
        "admin_name",
        "admin_notes",
        "decision_at",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
