import json

from django.core.exceptions import PermissionDenied, ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from backend.security import rate_limit
from corrections.models import Correction
from corrections.services import (
    corrections_for_user,
    filter_corrections,
    submit_correction,
)
from games.models import Game
from users.services import can_review_corrections, can_submit_corrections


def serialize_correction(correction: Correction):
    return {
        "id": str(correction.id),
        "gameId": str(correction.game_id),
        "gameSlug": correction.game_slug,
        "gameTitle": correction.game_title,
        "submittedBy": str(correction.submitted_by_id),
        "submittedByName": correction.submitted_by_name,
        "submittedAt": correction.submitted_at.isoformat(),
        "field": correction.field,
        "oldValue": correction.old_value,
        "newValue": correction.new_value,
        "reason": correction.reason,
        "status": correction.status,
        "reviewedBy": str(correction.reviewed_by_id) if correction.reviewed_by_id else None,
        "reviewedByName": correction.reviewed_by_name or None,
        "reviewedAt": correction.reviewed_at.isoformat() if correction.reviewed_at else None,
        "reviewNotes": correction.review_notes or None,
        "finalValue": correction.final_value,
        "discordMessageIds": correction.discord_message_ids,
    }


@require_http_methods(["GET", "POST"])
@rate_limit("api")
def corrections_view(request):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)

    if request.method == "POST":
        return _submit(request)
    return _list(request)


def _submit(request):
    user = request.user
    # Checked before the body so blocked accounts never reach validation.
    if not can_submit_corrections(user):
        return JsonResponse(
            {"detail": "Your account is suspended or blocked", "userStatus": user.status},
            status=403,
        )

    try:
        payload = json.loads(request.body or "{}")
    except json.JSONDecodeError:
        return JsonResponse({"detail": "Invalid JSON body."}, status=400)

    try:
        correction = submit_correction(submitter=user, payload=payload)
    except PermissionDenied as exc:
        return JsonResponse({"detail": str(exc)}, status=403)
    except Game.DoesNotExist:
        return JsonResponse({"detail": "Game not found."}, status=404)
    except ValidationError as exc:
        return JsonResponse({"detail": exc.messages[0]}, status=400)

    return JsonResponse({"correction": serialize_correction(correction)}, status=201)


def _list(request):
    user = request.user

    # Plain users only ever see their own corrections.
    if not can_review_corrections(user):
        corrections = corrections_for_user(user)
        return JsonResponse(
            {"corrections": [serialize_correction(c) for c in corrections]}
        )

    status = (request.GET.get("status") or "").strip()
    game_slug = (request.GET.get("gameSlug") or "").strip()
    user_id = (request.GET.get("userId") or "").strip()

    if status and status not in Correction.Status.values:
        return JsonResponse({"detail": "Invalid status."}, status=400)
    if user_id and not user_id.isdigit():
        return JsonResponse({"detail": "Invalid userId."}, status=400)

    corrections = filter_corrections(
        status=status,
        game_slug=game_slug,
        user_id=int(user_id) if user_id else None,
    )
    return JsonResponse({"corrections": [serialize_correction(c) for c in corrections]})
