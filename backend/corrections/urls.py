from django.urls import path

from corrections.views import corrections_view


urlpatterns = [
    path("api/corrections", corrections_view, name="corrections"),
]
