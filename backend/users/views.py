import json

from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.http import JsonResponse
from django.utils.dateparse import parse_datetime
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from backend.security import rate_limit, sanitize_string
from users.models import ModerationAction
from users.services import (
    ban_provider,
    can_review_corrections,
    check_fraud_pattern,
    delete_account,
    export_account,
    is_admin,
    is_developer,
    leaderboard,
    moderate_user,
    restore_account,
)


User = get_user_model()


def _serialize_user(user):
    return {
        "id": str(user.pk),
        "name": user.display_name,
        "email": user.email,
        "avatar": user.avatar,
        "role": user.role,
        "status": user.status or User.Status.ACTIVE,
        "provider": user.provider or "unknown",
        "submissionsCount": user.submissions_count,
        "approvedCount": user.approved_count,
        "rejectedCount": user.rejected_count,
        "suspendedUntil": user.suspended_until.isoformat() if user.suspended_until else None,
        "createdAt": user.date_joined.isoformat(),
        "lastLoginAt": user.last_login.isoformat() if user.last_login else None,
        "settings": user.settings,
    }


def _serialize_moderation_action(action: ModerationAction):
    return {
        "id": str(action.id),
        "moderatedUser": {
            "id": str(action.user_id),
            "name": action.user.display_name,
        },
        "moderator": {
            "id": str(action.moderator_id) if action.moderator_id else None,
            "name": action.moderator_name,
        },
        "action": action.action,
        "reason": action.reason,
        "previousRole": action.previous_role or None,
        "newRole": action.new_role or None,
        "previousStatus": action.previous_status or None,
        "newStatus": action.new_status or None,
        "timestamp": action.created_at.isoformat(),
    }


def _get_user_or_404(user_id):
    user = User.objects.filter(pk=user_id).first() if str(user_id).isdigit() else None
    if not user:
        return None, JsonResponse({"detail": "User not found."}, status=404)
    return user, None


@require_GET
@rate_limit("admin")
def user_list_view(request):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    if not is_admin(user):
        return JsonResponse({"detail": "Admin access required."}, status=403)

    users = User.objects.order_by("-date_joined")
    role = (request.GET.get("role") or "").strip()
    if role:
        users = users.filter(role=role)
    status = (request.GET.get("status") or "").strip()
    if status:
        users = users.filter(status=status)

    return JsonResponse(
        {"users": [dict(_serialize_user(u), fraudCheck=check_fraud_pattern(u)) for u in users]}
    )


@require_http_methods(["GET", "PATCH", "DELETE"])
@rate_limit("api")
def user_detail_view(request, user_id):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)

    target, error = _get_user_or_404(user_id)
    if error:
        return error

    if request.method == "PATCH":
        return _update_user(request, target)
    if request.method == "DELETE":
        return _delete_user(request, target)

    response = JsonResponse(_serialize_user(target))
    response["Cache-Control"] = "private, no-cache, must-revalidate"
    return response


def _update_user(request, target):
    moderator = request.user
    if not is_admin(moderator):
        return JsonResponse({"detail": "Admin access required."}, status=403)

    try:
        payload = json.loads(request.body or "{}")
    except json.JSONDecodeError:
        return JsonResponse({"detail": "Invalid JSON body."}, status=400)

    role = sanitize_string(str(payload.get("role") or ""), 50)
    status = sanitize_string(str(payload.get("status") or ""), 50)
    reason = sanitize_string(str(payload.get("moderationReason") or ""), 2000)

    suspended_until = None
    if payload.get("suspendedUntil"):
        suspended_until = parse_datetime(str(payload["suspendedUntil"]))
        if suspended_until is None:
            return JsonResponse({"detail": "Invalid suspendedUntil date."}, status=400)

    try:
        updated = moderate_user(
            target=target,
            moderator=moderator,
            role=role or None,
            status=status or None,
            suspended_until=suspended_until,
            reason=reason,
        )
    except PermissionDenied as exc:
        return JsonResponse({"detail": str(exc)}, status=403)
    except ValidationError as exc:
        return JsonResponse({"detail": exc.messages[0]}, status=400)

    return JsonResponse({"success": True, "user": _serialize_user(updated)})


def _delete_user(request, target):
    if request.user.pk != target.pk:
        return JsonResponse(
            {"detail": "You can only delete your own account."},
            status=403,
        )

    try:
        delete_account(user=target)
    except ValidationError as exc:
        return JsonResponse({"detail": exc.messages[0]}, status=400)

    return JsonResponse({"success": True})


@require_GET
@rate_limit("api")
def user_export_view(request, user_id):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    if user.pk != user_id:
        return JsonResponse({"detail": "You can only export your own data."}, status=403)

    response = JsonResponse(export_account(user=user))
    response["Content-Disposition"] = f'attachment; filename="gfwlhub-data-{user.pk}.json"'
    return response


@require_POST
@rate_limit("admin")
def user_restore_view(request, user_id):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    if not is_admin(user):
        return JsonResponse({"detail": "Admin access required."}, status=403)

    try:
        payload = json.loads(request.body or "{}")
    except json.JSONDecodeError:
        return JsonResponse({"detail": "Invalid JSON body."}, status=400)

    admin_override = bool(payload.get("adminOverride"))
    if admin_override and not is_developer(user):
        return JsonResponse(
            {"detail": "Only developers can override the restore grace period."},
            status=403,
        )

    target, error = _get_user_or_404(user_id)
    if error:
        return error

    try:
        restored = restore_account(user=target, admin_override=admin_override)
    except ValidationError as exc:
        return JsonResponse({"detail": exc.messages[0]}, status=400)

    return JsonResponse({"success": True, "user": _serialize_user(restored)})


@require_GET
@rate_limit("admin")
def moderation_logs_view(request):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    if not is_admin(user):
        return JsonResponse({"detail": "Admin access required."}, status=403)

    actions = ModerationAction.objects.select_related("user").order_by("-created_at")
    return JsonResponse(
        {"logs": [_serialize_moderation_action(action) for action in actions]}
    )


@require_GET
@rate_limit("api")
def leaderboard_view(request):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    if not can_review_corrections(user):
        return JsonResponse({"detail": "Reviewer or admin access required."}, status=403)

    rows = []
    for rank, row in enumerate(leaderboard(), start=1):
        rows.append(
            {
                "rank": rank,
                "userId": str(row.pk),
                "userName": row.display_name,
                "avatar": row.avatar,
                "role": row.role,
                "status": row.status or User.Status.ACTIVE,
                "totalSubmissions": row.submissions_count,
                "approvedCount": row.approved_count,
                "rejectedCount": row.rejected_count,
                "approvalRate": row.approval_rate,
            }
        )
    return JsonResponse({"leaderboard": rows})


@require_POST
@rate_limit("admin")
def ban_provider_view(request):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    if not is_admin(user):
        return JsonResponse({"detail": "Admin access required."}, status=403)

    try:
        payload = json.loads(request.body or "{}")
    except json.JSONDecodeError:
        return JsonResponse({"detail": "Invalid JSON body."}, status=400)

    target = None
    if payload.get("userId"):
        target, error = _get_user_or_404(payload["userId"])
        if error:
            return error

    provider = payload.get("provider") or ""
    provider_account_id = payload.get("providerAccountId") or ""
    if target:
        # Default to the target account's own provider details.
        provider = provider or target.provider
        provider_account_id = provider_account_id or target.provider_account_id

    try:
        ban_provider(
            admin=user,
            provider=sanitize_string(str(provider), 50),
            provider_account_id=sanitize_string(str(provider_account_id), 200),
            reason=sanitize_string(str(payload.get("reason") or ""), 2000),
            notes=sanitize_string(str(payload.get("notes") or ""), 2000),
            user=target,
        )
    except PermissionDenied as exc:
        return JsonResponse({"detail": str(exc)}, status=403)
    except ValidationError as exc:
        return JsonResponse({"detail": exc.messages[0]}, status=400)

    return JsonResponse({"success": True}, status=201)
