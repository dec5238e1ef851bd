import json

from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from applications.models import ReviewerApplication
from applications.services import (
    application_history,
    approve_application,
    eligibility_details,
    latest_application,
    list_applications,
    reject_application,
    submit_application,
)
from backend.security import rate_limit, sanitize_string
from users.services import can_manage_users, is_admin


User = get_user_model()


def serialize_application(application: ReviewerApplication):
    return {
        "id": str(application.id),
        "userId": str(application.user_id),
        "userName": application.user_name,
        "userEmail": application.user_email,
        "motivationText": application.motivation_text,
        "experienceText": application.experience_text,
        "contributionExamples": application.contribution_examples,
        "timeAvailability": application.time_availability or None,
        "languages": application.languages or None,
        "priorExperience": application.prior_experience or None,
        "agreedToRules": application.agreed_to_rules,
        "status": application.status,
        "createdAt": application.created_at.isoformat(),
        "adminId": str(application.admin_id) if application.admin_id else None,
        "adminName": application.admin_name or None,
        "adminNotes": application.admin_notes or None,
        "decisionAt": application.decision_at.isoformat() if application.decision_at else None,
    }


@require_http_methods(["GET", "POST"])
@rate_limit("api")
def reviewer_application_view(request):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)

    if request.method == "GET":
        application = latest_application(user)
        return JsonResponse(
            {"application": serialize_application(application) if application else None}
        )

    try:
        payload = json.loads(request.body or "{}")
    except json.JSONDecodeError:
        return JsonResponse({"detail": "Invalid JSON body."}, status=400)

    try:
        application = submit_application(user=user, payload=payload)
    except PermissionDenied as exc:
        return JsonResponse({"detail": str(exc)}, status=403)
    except ValidationError as exc:
        return JsonResponse({"detail": exc.messages[0]}, status=400)

    return JsonResponse(
        {"success": True, "application": serialize_application(application)},
        status=201,
    )


@require_GET
@rate_limit("api")
def eligibility_view(request):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    return JsonResponse(eligibility_details(user))


@require_GET
@rate_limit("api")
def history_view(request):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)

    target = user
    user_id = (request.GET.get("userId") or "").strip()
    # Admins may look at someone else's history; everyone else gets their own.
    if user_id and is_admin(user):
        target = User.objects.filter(pk=user_id).first() if user_id.isdigit() else None
        if target is None:
            return JsonResponse({"detail": "User not found."}, status=404)

    return JsonResponse(
        {"history": [serialize_application(a) for a in application_history(target)]}
    )


def _admin_guard(request):
    user = request.user
    if not user.is_authenticated:
        return JsonResponse({"detail": "Authentication required."}, status=401)
    if not can_manage_users(user):
        return JsonResponse({"detail": "Admin access required."}, status=403)
    return None


@require_GET
@rate_limit("admin")
def admin_application_list_view(request):
    denied = _admin_guard(request)
    if denied:
        return denied

    status = sanitize_string(request.GET.get("status") or "", 20)
    if status and status not in ReviewerApplication.Status.values:
        return JsonResponse({"detail": "Invalid status"}, status=400)

    return JsonResponse(
        {"applications": [serialize_application(a) for a in list_applications(status)]}
    )


def _decide(request, application_id, decide):
    denied = _admin_guard(request)
    if denied:
        return denied

    try:
        payload = json.loads(request.body or "{}")
    except json.JSONDecodeError:
        return JsonResponse({"detail": "Invalid JSON body."}, status=400)

    notes = sanitize_string(str(payload.get("adminNotes") or ""), 1000)

    try:
        application = decide(application_id=application_id, admin=request.user, notes=notes)
    except ReviewerApplication.DoesNotExist:
        return JsonResponse({"detail": "Application not found."}, status=404)
    except PermissionDenied as exc:
        return JsonResponse({"detail": str(exc)}, status=403)
    except ValidationError as exc:
        return JsonResponse({"detail": exc.messages[0]}, status=400)

    return JsonResponse({"success": True, "application": serialize_application(application)})


@require_POST
@rate_limit("admin")
def approve_application_view(request, application_id):
    return _decide(request, application_id, approve_application)


@require_POST
@rate_limit("admin")
def reject_application_view(request, application_id):
    return _decide(request, application_id, reject_application)
