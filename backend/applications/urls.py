from django.urls import path

from applications.views import (
    admin_application_list_view,
    approve_application_view,
    eligibility_view,
    history_view,
    reject_application_view,
    reviewer_application_view,
)


urlpatterns = [
    path("api/reviewer-application", reviewer_application_view, name="reviewer_application"),
    path(
        "api/reviewer-application/eligibility",
        eligibility_view,
        name="reviewer_application_eligibility",
    ),
    path(
        "api/reviewer-application/history",
        history_view,
        name="reviewer_application_history",
    ),
    path(
        "api/admin/reviewer-applications",
        admin_application_list_view,
        name="admin_reviewer_applications",
    ),
    path(
        "api/admin/reviewer-applications/<uuid:application_id>/approve",
        approve_application_view,
        name="approve_reviewer_application",
    ),
    path(
        "api/admin/reviewer-applications/<uuid:application_id>/reject",
        reject_application_view,
        name="reject_reviewer_application",
    ),
]
