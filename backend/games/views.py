import json

from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods, require_POST

from backend.security import rate_limit, sanitize_string
from games.fields import FIELD_ATTRIBUTES
from games.models import Game
from games.services import admin_edit_game, get_field_value, publish_game
from users.services import is_admin


def _serialize_game(game: Game):
    data = {"id": str(game.id), "slug": game.slug}
    for field in FIELD_ATTRIBUTES:
        data[field] = get_field_value(game, field)
    data.update(
        {
            "featureEnabled": game.feature_enabled,
            "publishedAt": game.published_at.isoformat() if game.published_at else None,
            "publishedBy": str(game.published_by_id) if game.published_by_id else None,
            "updatedAt": game.updated_at.isoformat(),
        }
    )
    return data


def _serialize_update(update):
    return {
        "id": str(update.id),
        "field": update.field,
        "updateType": update.update_type,
        "submitter": update.submitter_name or None,
        "reviewer": update.reviewer_name or None,
        "notes": update.notes,
        "timestamp": update.created_at.isoformat(),
    }


@require_http_methods(["GET", "PATCH"])
@rate_limit("api")
def game_detail_view(request, slug):
    game = Game.objects.filter(slug=slug).first()
    if not game:
        return JsonResponse({"detail": "Game not found."}, status=404)

    if request.method == "PATCH":
        return _edit_game(request, game)

    data = _serialize_game(game)
    data["updateHistory"] = [_serialize_update(u) for u in game.updates.all()[:50]]
    return JsonResponse(data)


def _edit_game(request, game):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    if not is_admin(user):
        return JsonResponse({"detail": "Admin access required."}, status=403)

    try:
        payload = json.loads(request.body or "{}")
    except json.JSONDecodeError:
        return JsonResponse({"detail": "Invalid JSON body."}, status=400)

    changes = payload.get("changes")
    if not isinstance(changes, dict):
        return JsonResponse({"detail": "changes must be an object."}, status=400)
    notes = sanitize_string(str(payload.get("notes") or ""), 2000)

    try:
        logs = admin_edit_game(game=game, admin=user, changes=changes, notes=notes)
    except ValidationError as exc:
        return JsonResponse({"detail": exc.messages[0]}, status=400)

    game.refresh_from_db()
    return JsonResponse(
        {
            "game": _serialize_game(game),
            "changedFields": [log.field for log in logs],
        }
    )


@require_POST
@rate_limit("admin")
def publish_game_view(request, slug):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    if not is_admin(user):
        return JsonResponse({"detail": "Admin access required."}, status=403)

    game = Game.objects.filter(slug=slug).first()
    if not game:
        return JsonResponse({"detail": "Game not found."}, status=404)

    try:
        publish_game(game=game, admin=user)
    except ValidationError as exc:
        return JsonResponse({"detail": exc.messages[0]}, status=400)

    return JsonResponse({"success": True, "game": _serialize_game(game)})
