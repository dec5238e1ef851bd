"""
users/services.py

Account level rules:
- role helpers and the developer allowlist
- contribution counters
- moderation (role / status changes)
- provider bans and the fraud pattern check
- self-service delete, restore and export
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from corrections.models import Correction
from reviews.models import AuditLog
from users.models import BannedProvider, ModerationAction

logger = logging.getLogger(__name__)

User = get_user_model()

DELETED_ACCOUNT_NAME = "Deleted Account"

COUNTER_FIELDS = {"submissions_count", "approved_count", "rejected_count"}


# ============================================================
# ROLE HELPERS
# ============================================================

def is_admin(user):
    return user.is_authenticated and user.role == User.Role.ADMIN


def is_reviewer(user):
    return user.is_authenticated and user.role == User.Role.REVIEWER


def can_review_corrections(user):
    return is_reviewer(user) or is_admin(user)


def can_manage_users(user):
    return is_admin(user)


def is_developer(user):
    """Developers are identified by email, independent of their role."""
    if not user.is_authenticated or not user.email:
        return False
    return user.email.strip().lower() in settings.DEVELOPER_EMAILS


def can_submit_corrections(user):
    # Blank status is treated as active for accounts created before moderation.
    return not user.status or user.status == User.Status.ACTIVE


# ============================================================
# COUNTERS
# ============================================================

def increment_counter(*, user_id, field):
    """Single UPDATE ... SET field = field + 1, never read-modify-write."""
    if field not in COUNTER_FIELDS:
        raise ValueError(f"Unknown counter field: {field}")
    User.objects.filter(pk=user_id).update(**{field: F(field) + 1})


# ============================================================
# MODERATION
# ============================================================

@transaction.atomic
def moderate_user(
    *,
    target,
    moderator,
    role=None,
    status=None,
    suspended_until=None,
    reason="",
):
    if not role and not status:
        raise ValidationError("Must provide role or status to update")
    if role and role not in User.Role.values:
        raise ValidationError("Invalid role")
    if status and status not in User.Status.values:
        raise ValidationError("Invalid status")

    if role and not is_developer(moderator):
        if target.role == User.Role.ADMIN:
            raise PermissionDenied(
                "Only developers can change admin roles. "
                "Regular admins cannot modify other admins."
            )
        if role == User.Role.ADMIN:
            raise PermissionDenied(
                "Only developers can promote users to admin. "
                "Regular admins can only promote to reviewer."
            )

    target = User.objects.select_for_update().get(pk=target.pk)
    previous_role = target.role
    previous_status = target.status
    update_fields = ["updated_at"]

    if role:
        target.role = role
        update_fields.append("role")

    if status:
        target.status = status
        update_fields.append("status")
        if status in (User.Status.ACTIVE, User.Status.RESTRICTED):
            target.suspended_until = None
            update_fields.append("suspended_until")
        elif status == User.Status.SUSPENDED and suspended_until:
            target.suspended_until = suspended_until
            update_fields.append("suspended_until")

    target.save(update_fields=update_fields)

    if role:
        action = f"Role changed to {role}"
    else:
        action = f"Status changed to {status}"

    ModerationAction.objects.create(
        user=target,
        moderator=moderator,
        moderator_name=moderator.display_name or "Unknown Admin",
        action=action,
        reason=reason or "No reason provided",
        previous_role=previous_role if role else "",
        new_role=role or "",
        previous_status=previous_status if status else "",
        new_status=status or "",
    )
    logger.info(
        "Moderation: user=%s by=%s action=%s",
        target.pk,
        moderator.pk,
        action,
    )
    return target


# ============================================================
# PROVIDER BANS
# ============================================================

def is_provider_banned(user):
    if not user.provider or not user.provider_account_id:
        return False
    return BannedProvider.objects.filter(
        provider=user.provider,
        provider_account_id=user.provider_account_id,
    ).exists()


def ban_provider(
    *,
    admin,
    provider,
    provider_account_id,
    reason,
    notes="",
    user=None,
):
    """
    Permanently ban a sign-in provider account. The account can no longer
    authenticate, including any local account recreated for it later.
    """

    if not is_admin(admin):
        raise PermissionDenied("Admin access required.")
    if not provider or not provider_account_id or not reason:
        raise ValidationError("Provider, provider account ID, and reason are required")
    if provider not in BannedProvider.Provider.values:
        raise ValidationError("Invalid provider")
    if BannedProvider.objects.filter(
        provider=provider,
        provider_account_id=provider_account_id,
    ).exists():
        raise ValidationError("This provider account is already banned")

    ban = BannedProvider.objects.create(
        provider=provider,
        provider_account_id=provider_account_id,
        user=user,
        user_name=user.display_name if user else "",
        reason=reason,
        notes=notes,
        banned_by=admin,
        banned_by_name=admin.display_name or "Unknown",
    )
    logger.warning(
        "Provider account banned: %s:%s user=%s by=%s",
        provider,
        provider_account_id,
        user.pk if user else None,
        admin.pk,
    )
    return ban


def check_fraud_pattern(user):
    """
    Flag accounts whose submissions are mostly rejected. Pending
    submissions count towards the total.
    """

    total = user.submissions_count
    rejection_rate = user.rejected_count / total * 100 if total else 0
    if rejection_rate > settings.FRAUD_REJECTION_RATE and total >= settings.FRAUD_MIN_SUBMISSIONS:
        return {
            "isSuspicious": True,
            "reason": f"High rejection rate: {rejection_rate:.1f}%",
            "rejectionRate": rejection_rate,
        }
    return {"isSuspicious": False, "reason": None, "rejectionRate": rejection_rate}


# ============================================================
# ACCOUNT LIFECYCLE
# ============================================================

@transaction.atomic
def delete_account(*, user):
    """
    Soft delete. Content stays, the visible name on it is anonymized and the
    original name is archived so the account can be restored.
    """

    if user.status == User.Status.DELETED:
        raise ValidationError("Account is already deleted.")

    Correction.objects.filter(submitted_by=user).update(
        submitted_by_name=DELETED_ACCOUNT_NAME,
    )
    AuditLog.objects.filter(changed_by=user).update(
        changed_by_name=DELETED_ACCOUNT_NAME,
    )
    AuditLog.objects.filter(submitted_by=user).update(
        submitted_by_name=DELETED_ACCOUNT_NAME,
    )

    user.archived_name = user.display_name or "Unknown User"
    user.archived_avatar = user.avatar
    user.name = DELETED_ACCOUNT_NAME
    user.avatar = ""
    user.email = f"deleted_{user.pk}@deleted.local"
    user.status = User.Status.DELETED
    user.deleted_at = timezone.now()
    user.save(
        update_fields=[
            "archived_name",
            "archived_avatar",
            "name",
            "avatar",
            "email",
            "status",
            "deleted_at",
            "updated_at",
        ]
    )
    logger.info("Account %s soft deleted", user.pk)
    return user


@transaction.atomic
def restore_account(*, user, admin_override=False):
    if user.status != User.Status.DELETED or not user.deleted_at:
        raise ValidationError("User is not deleted.")

    grace = timedelta(days=settings.ACCOUNT_RESTORE_GRACE_DAYS)
    if not admin_override and timezone.now() - user.deleted_at > grace:
        raise ValidationError(
            "Account is beyond the restore grace period. Developer override required."
        )

    restored_name = user.archived_name or "User"

    user.name = restored_name
    user.avatar = user.archived_avatar
    user.status = User.Status.ACTIVE
    user.deleted_at = None
    user.suspended_until = None
    user.archived_name = ""
    user.archived_avatar = ""
    user.save(
        update_fields=[
            "name",
            "avatar",
            "status",
            "deleted_at",
            "suspended_until",
            "archived_name",
            "archived_avatar",
            "updated_at",
        ]
    )

    Correction.objects.filter(submitted_by=user).update(submitted_by_name=restored_name)
    AuditLog.objects.filter(submitted_by=user).update(submitted_by_name=restored_name)
    AuditLog.objects.filter(changed_by=user).update(changed_by_name=restored_name)

    logger.info("Account %s restored (override=%s)", user.pk, admin_override)
    return user


def export_account(*, user):
    corrections = Correction.objects.filter(submitted_by=user).order_by("-submitted_at")
    audit_logs = AuditLog.objects.filter(submitted_by=user).order_by("-changed_at")

    by_status = {status: 0 for status in Correction.Status.values}
    for status in corrections.values_list("status", flat=True):
        by_status[status] += 1

    return {
        "exportInfo": {
            "exportedAt": timezone.now().isoformat(),
            "userId": str(user.pk),
            "format": "json",
        },
        "account": {
            "name": user.display_name,
            "email": user.email,
            "role": user.role,
            "status": user.status or User.Status.ACTIVE,
            "createdAt": user.date_joined.isoformat(),
            "settings": user.settings,
        },
        "statistics": {
            "submissionsCount": user.submissions_count,
            "approvedCount": user.approved_count,
            "rejectedCount": user.rejected_count,
            "approvalRate": user.approval_rate,
            "correctionsByStatus": by_status,
        },
        "corrections": [
            {
                "id": str(c.id),
                "gameSlug": c.game_slug,
                "gameTitle": c.game_title,
                "field": c.field,
                "oldValue": c.old_value,
                "newValue": c.new_value,
                "reason": c.reason,
                "status": c.status,
                "submittedAt": c.submitted_at.isoformat(),
                "reviewedAt": c.reviewed_at.isoformat() if c.reviewed_at else None,
                "reviewNotes": c.review_notes,
            }
            for c in corrections
        ],
        "auditLogs": [
            {
                "id": str(log.id),
                "gameSlug": log.game_slug,
                "field": log.field,
                "oldValue": log.old_value,
                "newValue": log.new_value,
                "changedAt": log.changed_at.isoformat(),
            }
            for log in audit_logs
        ],
    }


# ============================================================
# LEADERBOARD
# ============================================================

def leaderboard():
    """
    Users ranked by approval rate, then by volume.
    Pending corrections are not part of the rate.
    """

    users = User.objects.filter(
        status__in=[User.Status.ACTIVE, User.Status.SUSPENDED, ""],
        submissions_count__gt=0,
    )
    return sorted(
        users,
        key=lambda u: (
            -(u.approved_count / u.reviewed_count if u.reviewed_count else 0),
            -u.submissions_count,
        ),
    )
