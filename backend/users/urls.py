from django.urls import path

from users.views import (
    ban_provider_view,
    leaderboard_view,
    moderation_logs_view,
    user_detail_view,
    user_export_view,
    user_list_view,
    user_restore_view,
)


urlpatterns = [
    path("api/users", user_list_view, name="user_list"),
    path("api/users/ban-provider", ban_provider_view, name="ban_provider"),
    path("api/users/<int:user_id>", user_detail_view, name="user_detail"),
    path("api/users/<int:user_id>/export", user_export_view, name="user_export"),
    path("api/users/<int:user_id>/restore", user_restore_view, name="user_restore"),
    path("api/moderation-logs", moderation_logs_view, name="moderation_logs"),
    path("api/leaderboard", leaderboard_view, name="leaderboard"),
]
