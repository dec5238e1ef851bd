from django.urls import path

from reviews.views import (
    audit_logs_view,
    dashboard_stats_view,
    review_batch_view,
    review_correction_view,
)


urlpatterns = [
    path("api/corrections/review", review_correction_view, name="review_correction"),
    path("api/corrections/review-batch", review_batch_view, name="review_batch"),
    path("api/audit-logs", audit_logs_view, name="audit_logs"),
    path("api/dashboard/stats", dashboard_stats_view, name="dashboard_stats"),
]
