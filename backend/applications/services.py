"""
applications/services.py

Reviewer applications.

A plain user who has been around long enough, with enough accepted
corrections and a high enough approval rate, may apply. Only one
application may be pending at a time, and a rejection starts a cooldown.
Approving an application promotes the applicant to reviewer and records
the role change in the moderation history.
"""

import logging
import math
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.utils import timezone

from applications.models import ReviewerApplication
from backend.security import sanitize_string
from users.models import ModerationAction
from users.services import can_manage_users

logger = logging.getLogger(__name__)

User = get_user_model()

APPROVAL_ACTION = "Role changed to reviewer (from reviewer application approval)"
APPROVAL_REASON = "Reviewer application approved"

MIN_TEXT_LENGTH = 10

# wire name -> (attribute, max length, required message, too short message)
TEXT_FIELDS = {
    "motivation": (
        "motivation_text",
        2000,
        "Motivation text is required",
        "Motivation text must be at least 10 characters",
    ),
    "experience": (
        "experience_text",
        2000,
        "Experience with platform is required",
        "Experience text must be at least 10 characters",
    ),
    "contributionExamples": (
        "contribution_examples",
        2000,
        "Examples of contributions are required",
        "Contribution examples must be at least 10 characters",
    ),
}

# wire name -> (attribute, max length)
OPTIONAL_FIELDS = {
    "timeAvailability": ("time_availability", 500),
    "languages": ("languages", 200),
    "priorExperience": ("prior_experience", 1000),
}


# ============================================================
# ELIGIBILITY
# ============================================================

def account_age_days(user, now=None):
    now = now or timezone.now()
    return (now - user.date_joined).total_seconds() / 86400


def eligibility_details(user, now=None):
    config = settings.REVIEWER_APPLICATION
    age = account_age_days(user, now)
    missing = []

    if user.role != User.Role.USER:
        missing.append("User must have 'user' role")
    if user.status not in ("", User.Status.ACTIVE):
        missing.append("User account must be active")
    if age < config["MIN_ACCOUNT_AGE_DAYS"]:
        missing.append(
            f"Account must be at least {config['MIN_ACCOUNT_AGE_DAYS']} days old "
            f"(currently {math.floor(age)} days)"
        )
    if user.submissions_count < config["MIN_CORRECTIONS_SUBMITTED"]:
        missing.append(
            f"Must have at least {config['MIN_CORRECTIONS_SUBMITTED']} corrections submitted "
            f"(currently {user.submissions_count})"
        )
    if user.approved_count < config["MIN_CORRECTIONS_ACCEPTED"]:
        missing.append(
            f"Must have at least {config['MIN_CORRECTIONS_ACCEPTED']} corrections accepted "
            f"(currently {user.approved_count})"
        )

    rate = user.approved_count / user.reviewed_count if user.reviewed_count else 0
    if rate < config["MIN_APPROVAL_RATE"]:
        missing.append(
            f"Approval rate must be at least {round(config['MIN_APPROVAL_RATE'] * 100)}% "
            f"(currently {user.approval_rate}%)"
        )

    return {
        "eligible": not missing,
        "accountAgeDays": math.floor(age),
        "submissionsCount": user.submissions_count,
        "approvedCount": user.approved_count,
        "approvalRate": user.approval_rate,
        "missingRequirements": missing,
    }


def is_eligible(user, now=None):
    return eligibility_details(user, now)["eligible"]


def has_pending_application(user):
    return ReviewerApplication.objects.filter(
        user=user,
        status=ReviewerApplication.Status.PENDING,
    ).exists()


def days_until_reapply(user, now=None):
    """0 when the user may apply, otherwise whole days left in the cooldown."""

    now = now or timezone.now()
    last_rejected = (
        ReviewerApplication.objects.filter(
            user=user,
            status=ReviewerApplication.Status.REJECTED,
            decision_at__isnull=False,
        )
        .order_by("-decision_at")
        .first()
    )
    if last_rejected is None:
        return 0

    cooldown = timedelta(days=settings.REVIEWER_APPLICATION["REAPPLICATION_COOLDOWN_DAYS"])
    remaining = last_rejected.decision_at + cooldown - now
    if remaining <= timedelta(0):
        return 0
    return math.ceil(remaining.total_seconds() / 86400)


# ============================================================
# APPLY
# ============================================================

def _clean_payload(payload):
    cleaned = {}
    for wire_name, (attribute, max_length, required, too_short) in TEXT_FIELDS.items():
        value = payload.get(wire_name)
        if not value or not isinstance(value, str):
            raise ValidationError(required)
        value = sanitize_string(value, max_length)
        if len(value) < MIN_TEXT_LENGTH:
            raise ValidationError(too_short)
        cleaned[attribute] = value

    if not payload.get("agreedToRules"):
        raise ValidationError("You must agree to the reviewer guidelines")

    for wire_name, (attribute, max_length) in OPTIONAL_FIELDS.items():
        value = payload.get(wire_name)
        cleaned[attribute] = sanitize_string(str(value), max_length) if value else ""
    return cleaned


@transaction.atomic
def submit_application(*, user, payload):
    """
    Raises ``ValidationError`` for reviewers and admins, a second pending
    application or a bad payload, and ``PermissionDenied`` when the user is
    not eligible or still in the reapplication cooldown.
    """

    user = User.objects.select_for_update().get(pk=user.pk)

    if user.role != User.Role.USER:
        raise ValidationError("You are already a reviewer or admin")
    if not is_eligible(user):
        raise PermissionDenied("You do not meet the eligibility requirements")
    if has_pending_application(user):
        raise ValidationError("You already have a pending application")

    wait = days_until_reapply(user)
    if wait:
        raise PermissionDenied(
            f"You cannot re-apply yet. Please wait {wait} more day(s) "
            "before submitting a new application."
        )

    application = ReviewerApplication.objects.create(
        user=user,
        user_name=user.display_name,
        user_email=user.email,
        agreed_to_rules=True,
        **_clean_payload(payload),
    )
    logger.info("Reviewer application %s submitted by user %s", application.id, user.pk)
    return application


# ============================================================
# QUERIES
# ============================================================

def latest_application(user):
    return ReviewerApplication.objects.filter(user=user).order_by("-created_at").first()


def application_history(user):
    return ReviewerApplication.objects.filter(user=user).order_by("-created_at")


def list_applications(status=""):
    applications = ReviewerApplication.objects.all()
    if status:
        applications = applications.filter(status=status)
    return applications.order_by("-created_at")


# ============================================================
# ADMIN DECISIONS
# ============================================================

def _lock_pending(application_id, admin):
    if not can_manage_users(admin):
        raise PermissionDenied("Admin access required.")

    application = ReviewerApplication.objects.select_for_update().get(pk=application_id)
    if application.status != ReviewerApplication.Status.PENDING:
        raise ValidationError("Application has already been processed")
    return application


def _record_decision(application, *, admin, status, notes):
    application.status = status
    application.admin = admin
    application.admin_name = admin.display_name
    application.admin_notes = notes
    application.decision_at = timezone.now()
    application.save(update_fields=["status", "admin", "admin_name", "admin_notes", "decision_at"])


@transaction.atomic
def approve_application(*, application_id, admin, notes=""):
    application = _lock_pending(application_id, admin)

    applicant = User.objects.select_for_update().get(pk=application.user_id)
    if applicant.role != User.Role.USER:
        raise ValidationError("Applicant is already a reviewer or admin")

    _record_decision(application, admin=admin, status=ReviewerApplication.Status.APPROVED, notes=notes)

    previous_role = applicant.role
    applicant.role = User.Role.REVIEWER
    applicant.save(update_fields=["role", "updated_at"])

    ModerationAction.objects.create(
        user=applicant,
        moderator=admin,
        moderator_name=admin.display_name or "Unknown Admin",
        action=APPROVAL_ACTION,
        reason=notes or APPROVAL_REASON,
        previous_role=previous_role,
        new_role=User.Role.REVIEWER,
    )
    logger.info(
        "Reviewer application %s approved by %s, user %s promoted",
        application.id,
        admin.pk,
        applicant.pk,
    )
    return application


@transaction.atomic
def reject_application(*, application_id, admin, notes=""):
    application = _lock_pending(application_id, admin)
    _record_decision(application, admin=admin, status=ReviewerApplication.Status.REJECTED, notes=notes)
    logger.info("Reviewer application %s rejected by %s", application.id, admin.pk)
    return application
