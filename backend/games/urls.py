from django.urls import path

from games.views import game_detail_view, publish_game_view


urlpatterns = [
    path("api/games/<slug:slug>", game_detail_view, name="game_detail"),
    path("api/games/<slug:slug>/publish", publish_game_view, name="game_publish"),
]
