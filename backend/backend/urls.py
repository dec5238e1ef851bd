"""
URL configuration for backend project.
"""

from django.contrib import admin
from django.urls import include, path

from backend.views import csrf_token_view

urlpatterns = [
    path("api/csrf-token", csrf_token_view, name="csrf_token"),
    path("", include("users.urls")),
    path("", include("games.urls")),
    path("", include("corrections.urls")),
    path("", include("reviews.urls")),
    path("", include("applications.urls")),
    path("admin/", admin.site.urls),
]
