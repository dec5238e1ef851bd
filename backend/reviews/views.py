import json

from django.core.exceptions import PermissionDenied, ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from backend.security import rate_limit, sanitize_string
from corrections.models import Correction
from corrections.views import serialize_correction
from reviews.models import AuditLog
from reviews.services import UNSET, audit_logs, dashboard_stats, review_batch, review_correction
from users.services import can_review_corrections, is_admin


def _serialize_audit_log(log: AuditLog):
    return {
        "id": str(log.id),
        "gameId": str(log.game_id),
        "gameSlug": log.game_slug,
        "gameTitle": log.game_title,
        "field": log.field,
        "oldValue": log.old_value,
        "newValue": log.new_value,
        "changedBy": str(log.changed_by_id),
        "changedByName": log.changed_by_name,
        "changedByRole": log.changed_by_role,
        "correctionId": str(log.correction_id) if log.correction_id else None,
        "notes": log.notes or None,
        "submittedBy": str(log.submitted_by_id) if log.submitted_by_id else None,
        "submittedByName": log.submitted_by_name or None,
        "changedAt": log.changed_at.isoformat(),
    }


def _reviewer_guard(request):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    if not can_review_corrections(user):
        return JsonResponse(
            {"detail": "You do not have permission to review corrections"},
            status=403,
        )
    return None


@require_POST
@rate_limit("admin")
def review_correction_view(request):
    denied = _reviewer_guard(request)
    if denied:
        return denied

    try:
        payload = json.loads(request.body or "{}")
    except json.JSONDecodeError:
        return JsonResponse({"detail": "Invalid JSON body."}, status=400)

    correction_id = sanitize_string(str(payload.get("correctionId") or ""), 50)
    decision = sanitize_string(str(payload.get("status") or ""), 50)
    notes = sanitize_string(str(payload.get("reviewNotes") or ""), 2000)

    if not correction_id or not decision:
        return JsonResponse({"detail": "Missing required fields"}, status=400)

    try:
        correction = review_correction(
            correction_id=correction_id,
            reviewer=request.user,
            decision=decision,
            notes=notes,
            final_value=payload["finalValue"] if "finalValue" in payload else UNSET,
        )
    except Correction.DoesNotExist:
        return JsonResponse({"detail": "Correction not found"}, status=404)
    except PermissionDenied as exc:
        return JsonResponse({"detail": str(exc)}, status=403)
    except ValidationError as exc:
        return JsonResponse({"detail": exc.messages[0]}, status=400)

    return JsonResponse({"success": True, "correction": serialize_correction(correction)})


@require_POST
@rate_limit("admin")
def review_batch_view(request):
    denied = _reviewer_guard(request)
    if denied:
        return denied

    try:
        payload = json.loads(request.body or "{}")
    except json.JSONDecodeError:
        return JsonResponse({"detail": "Invalid JSON body."}, status=400)

    try:
        reviewed, skipped = review_batch(reviewer=request.user, reviews=payload.get("reviews"))
    except ValidationError as exc:
        return JsonResponse({"detail": exc.messages[0]}, status=400)

    return JsonResponse(
        {
            "success": True,
            "processed": len(reviewed),
            "corrections": [serialize_correction(c) for c in reviewed],
            "skipped": skipped,
        }
    )


@require_GET
@rate_limit("admin")
def audit_logs_view(request):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    if not is_admin(user):
        return JsonResponse({"detail": "Admin access required."}, status=403)

    game_slug = (request.GET.get("gameSlug") or "").strip()
    limit = (request.GET.get("limit") or "").strip()
    if limit and not limit.isdigit():
        return JsonResponse({"detail": "limit must be a positive integer."}, status=400)

    logs = audit_logs(game_slug=game_slug, limit=int(limit) if limit else None)
    return JsonResponse({"logs": [_serialize_audit_log(log) for log in logs]})


@require_GET
@rate_limit("api")
def dashboard_stats_view(request):
    denied = _reviewer_guard(request)
    if denied:
        return denied
    return JsonResponse(dashboard_stats())
