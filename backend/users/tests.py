import json
from datetime import timedelta

from django.contrib.auth import authenticate, get_user_model
from django.core.cache import cache
from django.core.exceptions import PermissionDenied, ValidationError
from django.test import TestCase, override_settings
from django.utils import timezone

from corrections.models import Correction
from games.models import Game
from users.models import BannedProvider, ModerationAction
from users.services import (
    ban_provider,
    can_submit_corrections,
    check_fraud_pattern,
    delete_account,
    increment_counter,
    leaderboard,
    moderate_user,
    restore_account,
)


User = get_user_model()


@override_settings(DEVELOPER_EMAILS=["dev@example.com"])
class ModerationServiceTests(TestCase):
    def setUp(self):
        self.admin = User.objects.create_user(
            username="admin1",
            password="testpass123",
            email="admin1@example.com",
            role=User.Role.ADMIN,
        )
        self.other_admin = User.objects.create_user(
            username="admin2",
            password="testpass123",
            role=User.Role.ADMIN,
        )
        self.developer = User.objects.create_user(
            username="dev",
            password="testpass123",
            email="Dev@Example.com",
            role=User.Role.ADMIN,
        )
        self.regular = User.objects.create_user(
            username="regular",
            password="testpass123",
        )

    def test_admin_can_promote_to_reviewer(self):
        moderate_user(
            target=self.regular,
            moderator=self.admin,
            role=User.Role.REVIEWER,
            reason="Helpful contributor",
        )

        self.regular.refresh_from_db()
        self.assertEqual(self.regular.role, User.Role.REVIEWER)

        action = ModerationAction.objects.get(user=self.regular)
        self.assertEqual(action.action, "Role changed to reviewer")
        self.assertEqual(action.previous_role, User.Role.USER)
        self.assertEqual(action.new_role, User.Role.REVIEWER)
        self.assertEqual(action.reason, "Helpful contributor")

    def test_non_developer_cannot_promote_to_admin(self):
        with self.assertRaises(PermissionDenied):
            moderate_user(target=self.regular, moderator=self.admin, role=User.Role.ADMIN)

        self.regular.refresh_from_db()
        self.assertEqual(self.regular.role, User.Role.USER)
        self.assertFalse(ModerationAction.objects.exists())

    def test_non_developer_cannot_change_admin_role(self):
        with self.assertRaises(PermissionDenied):
            moderate_user(
                target=self.other_admin,
                moderator=self.admin,
                role=User.Role.USER,
            )

    def test_developer_email_match_is_case_insensitive(self):
        moderate_user(target=self.regular, moderator=self.developer, role=User.Role.ADMIN)

        self.regular.refresh_from_db()
        self.assertEqual(self.regular.role, User.Role.ADMIN)

    def test_status_change_records_default_reason(self):
        moderate_user(target=self.regular, moderator=self.admin, status=User.Status.BLOCKED)

        self.regular.refresh_from_db()
        self.assertEqual(self.regular.status, User.Status.BLOCKED)
        self.assertFalse(can_submit_corrections(self.regular))

        action = ModerationAction.objects.get(user=self.regular)
        self.assertEqual(action.action, "Status changed to blocked")
        self.assertEqual(action.reason, "No reason provided")
        self.assertEqual(action.previous_status, User.Status.ACTIVE)

    def test_reactivating_clears_suspension_end(self):
        until = timezone.now() + timedelta(days=3)
        moderate_user(
            target=self.regular,
            moderator=self.admin,
            status=User.Status.SUSPENDED,
            suspended_until=until,
        )
        self.regular.refresh_from_db()
        self.assertEqual(self.regular.suspended_until, until)

        moderate_user(target=self.regular, moderator=self.admin, status=User.Status.ACTIVE)
        self.regular.refresh_from_db()
        self.assertIsNone(self.regular.suspended_until)

    def test_requires_role_or_status(self):
        with self.assertRaises(ValidationError):
            moderate_user(target=self.regular, moderator=self.admin)

    def test_rejects_unknown_status(self):
        with self.assertRaises(ValidationError):
            moderate_user(target=self.regular, moderator=self.admin, status="banished")


class CounterTests(TestCase):
    def test_increment_counter_is_additive(self):
        user = User.objects.create_user(username="counter", password="testpass123")

        increment_counter(user_id=user.pk, field="submissions_count")
        increment_counter(user_id=user.pk, field="submissions_count")
        increment_counter(user_id=user.pk, field="approved_count")

        user.refresh_from_db()
        self.assertEqual(user.submissions_count, 2)
        self.assertEqual(user.approved_count, 1)
        self.assertEqual(user.approval_rate, 100)

    def test_unknown_counter_is_rejected(self):
        user = User.objects.create_user(username="counter2", password="testpass123")
        with self.assertRaises(ValueError):
            increment_counter(user_id=user.pk, field="is_staff")

    def test_blank_status_counts_as_active(self):
        user = User.objects.create_user(username="legacy", password="testpass123", status="")
        self.assertTrue(can_submit_corrections(user))


class AccountLifecycleTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(
            username="leaving",
            password="testpass123",
            name="Leaving User",
            email="leaving@example.com",
        )
        self.game = Game.objects.create(
            slug="halo-2",
            title="Halo 2",
            activation_type="Legacy (5x5)",
        )
        self.correction = Correction.objects.create(
            game=self.game,
            game_slug=self.game.slug,
            game_title=self.game.title,
            submitted_by=self.user,
            submitted_by_name=self.user.display_name,
            submitted_at=timezone.now(),
            field="developer",
            old_value="Bungie",
            new_value="Bungie Studios",
            reason="Official name",
        )

    def test_delete_anonymizes_and_archives(self):
        delete_account(user=self.user)

        self.user.refresh_from_db()
        self.assertEqual(self.user.status, User.Status.DELETED)
        self.assertEqual(self.user.name, "Deleted Account")
        self.assertEqual(self.user.archived_name, "Leaving User")
        self.assertEqual(self.user.email, f"deleted_{self.user.pk}@deleted.local")
        self.assertIsNotNone(self.user.deleted_at)

        self.correction.refresh_from_db()
        self.assertEqual(self.correction.submitted_by_name, "Deleted Account")

    def test_restore_within_grace_period(self):
        delete_account(user=self.user)
        restore_account(user=self.user)

        self.user.refresh_from_db()
        self.assertEqual(self.user.status, User.Status.ACTIVE)
        self.assertEqual(self.user.name, "Leaving User")
        self.assertIsNone(self.user.deleted_at)

        self.correction.refresh_from_db()
        self.assertEqual(self.correction.submitted_by_name, "Leaving User")

    def test_restore_after_grace_period_needs_override(self):
        delete_account(user=self.user)
        User.objects.filter(pk=self.user.pk).update(
            deleted_at=timezone.now() - timedelta(days=31),
        )
        self.user.refresh_from_db()

        with self.assertRaises(ValidationError):
            restore_account(user=self.user)

        restore_account(user=self.user, admin_override=True)
        self.user.refresh_from_db()
        self.assertEqual(self.user.status, User.Status.ACTIVE)

    def test_restore_requires_deleted_account(self):
        with self.assertRaises(ValidationError):
            restore_account(user=self.user)


class LeaderboardTests(TestCase):
    def test_ranked_by_rate_then_volume(self):
        steady = User.objects.create_user(
            username="steady",
            password="testpass123",
            submissions_count=10,
            approved_count=9,
            rejected_count=1,
        )
        perfect_small = User.objects.create_user(
            username="small",
            password="testpass123",
            submissions_count=2,
            approved_count=2,
        )
        perfect_big = User.objects.create_user(
            username="big",
            password="testpass123",
            submissions_count=5,
            approved_count=5,
        )
        User.objects.create_user(username="idle", password="testpass123")
        User.objects.create_user(
            username="gone",
            password="testpass123",
            status=User.Status.BLOCKED,
            submissions_count=3,
            approved_count=3,
        )

        self.assertEqual(leaderboard(), [perfect_big, perfect_small, steady])


@override_settings(DEVELOPER_EMAILS=["dev@example.com"])
class UserApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.admin = User.objects.create_user(
            username="api_admin",
            password="testpass123",
            role=User.Role.ADMIN,
        )
        self.reviewer = User.objects.create_user(
            username="api_reviewer",
            password="testpass123",
            role=User.Role.REVIEWER,
        )
        self.regular = User.objects.create_user(
            username="api_regular",
            password="testpass123",
        )

    def test_user_list_requires_admin(self):
        response = self.client.get("/api/users")
        self.assertEqual(response.status_code, 401)

        self.client.force_login(self.reviewer)
        response = self.client.get("/api/users")
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.admin)
        response = self.client.get("/api/users", {"role": "reviewer"})
        self.assertEqual(response.status_code, 200)
        ids = [row["id"] for row in response.json()["users"]]
        self.assertEqual(ids, [str(self.reviewer.pk)])

    def test_patch_updates_role(self):
        self.client.force_login(self.admin)
        response = self.client.patch(
            f"/api/users/{self.regular.pk}",
            data=json.dumps({"role": "reviewer", "moderationReason": "Trusted"}),
            content_type="application/json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["user"]["role"], "reviewer")

    def test_patch_admin_promotion_by_non_developer_is_forbidden(self):
        self.client.force_login(self.admin)
        response = self.client.patch(
            f"/api/users/{self.regular.pk}",
            data=json.dumps({"role": "admin"}),
            content_type="application/json",
        )

        self.assertEqual(response.status_code, 403)
        self.assertIn("Only developers", response.json()["detail"])

    def test_patch_by_non_admin_is_forbidden(self):
        self.client.force_login(self.reviewer)
        response = self.client.patch(
            f"/api/users/{self.regular.pk}",
            data=json.dumps({"status": "blocked"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 403)

    def test_delete_only_own_account(self):
        self.client.force_login(self.regular)
        response = self.client.delete(f"/api/users/{self.reviewer.pk}")
        self.assertEqual(response.status_code, 403)

        response = self.client.delete(f"/api/users/{self.regular.pk}")
        self.assertEqual(response.status_code, 200)
        self.regular.refresh_from_db()
        self.assertEqual(self.regular.status, User.Status.DELETED)

    def test_export_only_own_data(self):
        self.client.force_login(self.regular)
        response = self.client.get(f"/api/users/{self.admin.pk}/export")
        self.assertEqual(response.status_code, 403)

        response = self.client.get(f"/api/users/{self.regular.pk}/export")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["exportInfo"]["userId"], str(self.regular.pk))
        self.assertEqual(data["corrections"], [])

    def test_restore_override_requires_developer(self):
        delete_account(user=self.regular)
        self.client.force_login(self.admin)

        response = self.client.post(
            f"/api/users/{self.regular.pk}/restore",
            data=json.dumps({"adminOverride": True}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 403)

        response = self.client.post(
            f"/api/users/{self.regular.pk}/restore",
            data=json.dumps({}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["user"]["status"], "active")

    def test_moderation_logs_for_admins(self):
        moderate_user(target=self.regular, moderator=self.admin, status=User.Status.SUSPENDED)

        self.client.force_login(self.admin)
        response = self.client.get("/api/moderation-logs")

        self.assertEqual(response.status_code, 200)
        logs = response.json()["logs"]
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0]["newStatus"], "suspended")
        self.assertEqual(logs[0]["moderatedUser"]["id"], str(self.regular.pk))

    def test_leaderboard_requires_reviewer(self):
        self.client.force_login(self.regular)
        response = self.client.get("/api/leaderboard")
        self.assertEqual(response.status_code, 403)

        User.objects.filter(pk=self.regular.pk).update(submissions_count=4, approved_count=3, rejected_count=1)
        self.client.force_login(self.reviewer)
        response = self.client.get("/api/leaderboard")

        self.assertEqual(response.status_code, 200)
        rows = response.json()["leaderboard"]
        self.assertEqual(rows[0]["userId"], str(self.regular.pk))
        self.assertEqual(rows[0]["approvalRate"], 75)
        self.assertEqual(rows[0]["rank"], 1)

    def test_rate_limit_returns_429(self):
        self.client.force_login(self.regular)
        with self.settings(RATE_LIMITS={"api": (2, 60), "admin": (2, 60), "auth": (2, 60)}):
            self.assertEqual(self.client.get(f"/api/users/{self.regular.pk}").status_code, 200)
            self.assertEqual(self.client.get(f"/api/users/{self.regular.pk}").status_code, 200)
            response = self.client.get(f"/api/users/{self.regular.pk}")
        self.assertEqual(response.status_code, 429)


class ProviderBanTests(TestCase):
    def setUp(self):
        cache.clear()
        self.admin = User.objects.create_user(
            username="ban_admin",
            password="testpass123",
            name="Ban Admin",
            role=User.Role.ADMIN,
        )
        self.target = User.objects.create_user(
            username="ban_target",
            password="testpass123",
            name="Spammer",
            provider="github",
            provider_account_id="424242",
        )

    def test_fraud_pattern_needs_volume_and_high_rejection_rate(self):
        User.objects.filter(pk=self.target.pk).update(submissions_count=10, rejected_count=8)
        self.target.refresh_from_db()
        result = check_fraud_pattern(self.target)
        self.assertTrue(result["isSuspicious"])
        self.assertEqual(result["reason"], "High rejection rate: 80.0%")

        User.objects.filter(pk=self.target.pk).update(submissions_count=10, rejected_count=7)
        self.target.refresh_from_db()
        self.assertFalse(check_fraud_pattern(self.target)["isSuspicious"])

        User.objects.filter(pk=self.target.pk).update(submissions_count=9, rejected_count=9)
        self.target.refresh_from_db()
        self.assertFalse(check_fraud_pattern(self.target)["isSuspicious"])

    def test_banned_provider_cannot_authenticate(self):
        self.assertEqual(
            authenticate(username="ban_target", password="testpass123"),
            self.target,
        )

        ban_provider(
            admin=self.admin,
            provider="github",
            provider_account_id="424242",
            reason="Vandalism",
            user=self.target,
        )

        self.assertIsNone(authenticate(username="ban_target", password="testpass123"))
        ban = BannedProvider.objects.get()
        self.assertEqual(ban.user_name, "Spammer")
        self.assertEqual(ban.banned_by_name, "Ban Admin")

    def test_existing_session_ends_after_ban(self):
        self.client.force_login(self.target)
        self.assertEqual(self.client.get(f"/api/users/{self.target.pk}").status_code, 200)

        ban_provider(
            admin=self.admin,
            provider="github",
            provider_account_id="424242",
            reason="Vandalism",
        )

        self.assertEqual(self.client.get(f"/api/users/{self.target.pk}").status_code, 401)

    def test_same_account_cannot_be_banned_twice(self):
        ban_provider(admin=self.admin, provider="github", provider_account_id="424242", reason="Spam")
        with self.assertRaisesMessage(ValidationError, "already banned"):
            ban_provider(admin=self.admin, provider="github", provider_account_id="424242", reason="Spam")

    def test_only_admins_ban(self):
        with self.assertRaises(PermissionDenied):
            ban_provider(admin=self.target, provider="github", provider_account_id="1", reason="x")

    def test_ban_endpoint_defaults_to_target_account(self):
        self.client.force_login(self.admin)
        response = self.client.post(
            "/api/users/ban-provider",
            data=json.dumps({"userId": self.target.pk, "reason": "Repeated spam"}),
            content_type="application/json",
        )

        self.assertEqual(response.status_code, 201)
        ban = BannedProvider.objects.get()
        self.assertEqual(ban.provider, "github")
        self.assertEqual(ban.provider_account_id, "424242")
        self.assertEqual(ban.user, self.target)

    def test_ban_endpoint_requires_fields_and_admin(self):
        self.client.force_login(self.admin)
        response = self.client.post(
            "/api/users/ban-provider",
            data=json.dumps({"provider": "github"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["detail"],
            "Provider, provider account ID, and reason are required",
        )

        self.client.force_login(self.target)
        response = self.client.post(
            "/api/users/ban-provider",
            data=json.dumps({"provider": "github", "providerAccountId": "1", "reason": "x"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 403)
        self.assertFalse(BannedProvider.objects.exists())

    def test_user_list_includes_fraud_check(self):
        User.objects.filter(pk=self.target.pk).update(submissions_count=12, rejected_count=11)
        self.client.force_login(self.admin)

        response = self.client.get("/api/users", {"role": "user"})

        row = response.json()["users"][0]
        self.assertTrue(row["fraudCheck"]["isSuspicious"])
