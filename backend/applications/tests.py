import json
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import PermissionDenied, ValidationError
from django.test import TestCase
from django.utils import timezone

from applications.models import ReviewerApplication
from applications.services import (
    APPROVAL_ACTION,
    APPROVAL_REASON,
    approve_application,
    days_until_reapply,
    eligibility_details,
    reject_application,
    submit_application,
)
from users.models import ModerationAction


User = get_user_model()


APPLICATION = {
    "motivation": "I fix release dates all the time.",
    "experience": "Submitted corrections for two years.",
    "contributionExamples": "Shadowrun release date, Gears of War publisher.",
    "timeAvailability": "A few hours a week",
    "agreedToRules": True,
}


class ApplicationTestMixin:
    def _user(self, username, **fields):
        user = User.objects.create_user(username=username, password="testpass123", **fields)
        User.objects.filter(pk=user.pk).update(date_joined=timezone.now() - timedelta(days=30))
        user.refresh_from_db()
        return user

    def _eligible(self, username="applicant"):
        user = self._user(username, name="Applicant", email=f"{username}@example.com")
        User.objects.filter(pk=user.pk).update(
            submissions_count=25,
            approved_count=12,
            rejected_count=1,
        )
        user.refresh_from_db()
        return user


class EligibilityTests(ApplicationTestMixin, TestCase):
    def test_new_account_lists_every_missing_requirement(self):
        user = User.objects.create_user(username="fresh", password="testpass123")

        details = eligibility_details(user)

        self.assertFalse(details["eligible"])
        self.assertEqual(details["accountAgeDays"], 0)
        self.assertIn(
            "Account must be at least 7 days old (currently 0 days)",
            details["missingRequirements"],
        )
        self.assertIn(
            "Must have at least 20 corrections submitted (currently 0)",
            details["missingRequirements"],
        )
        self.assertIn(
            "Must have at least 10 corrections accepted (currently 0)",
            details["missingRequirements"],
        )

    def test_eligible_user(self):
        details = eligibility_details(self._eligible())
        self.assertTrue(details["eligible"])
        self.assertEqual(details["missingRequirements"], [])

    def test_low_approval_rate_blocks(self):
        user = self._eligible()
        User.objects.filter(pk=user.pk).update(approved_count=12, rejected_count=12)
        user.refresh_from_db()

        details = eligibility_details(user)

        self.assertEqual(
            details["missingRequirements"],
            ["Approval rate must be at least 80% (currently 50%)"],
        )

    def test_reviewers_and_suspended_users_are_not_eligible(self):
        user = self._eligible()
        user.role = User.Role.REVIEWER
        user.status = User.Status.SUSPENDED

        missing = eligibility_details(user)["missingRequirements"]

        self.assertIn("User must have 'user' role", missing)
        self.assertIn("User account must be active", missing)


class SubmitApplicationTests(ApplicationTestMixin, TestCase):
    def setUp(self):
        self.user = self._eligible()
        self.admin = self._user("app_admin", name="App Admin", role=User.Role.ADMIN)

    def test_submit_creates_pending_application(self):
        application = submit_application(user=self.user, payload=APPLICATION)

        self.assertEqual(application.status, ReviewerApplication.Status.PENDING)
        self.assertEqual(application.user_name, "Applicant")
        self.assertEqual(application.user_email, "applicant@example.com")
        self.assertEqual(application.time_availability, "A few hours a week")
        self.assertEqual(application.languages, "")
        self.assertTrue(application.agreed_to_rules)

    def test_only_one_pending_application(self):
        submit_application(user=self.user, payload=APPLICATION)
        with self.assertRaisesMessage(ValidationError, "You already have a pending application"):
            submit_application(user=self.user, payload=APPLICATION)

    def test_reviewer_cannot_apply(self):
        User.objects.filter(pk=self.user.pk).update(role=User.Role.REVIEWER)
        with self.assertRaisesMessage(ValidationError, "You are already a reviewer or admin"):
            submit_application(user=self.user, payload=APPLICATION)

    def test_ineligible_user_is_refused(self):
        User.objects.filter(pk=self.user.pk).update(approved_count=3)
        with self.assertRaises(PermissionDenied):
            submit_application(user=self.user, payload=APPLICATION)
        self.assertFalse(ReviewerApplication.objects.exists())

    def test_payload_rules(self):
        with self.assertRaisesMessage(ValidationError, "Motivation text must be at least 10 characters"):
            submit_application(user=self.user, payload=dict(APPLICATION, motivation="   short  "))

        with self.assertRaisesMessage(ValidationError, "Examples of contributions are required"):
            submit_application(user=self.user, payload=dict(APPLICATION, contributionExamples=""))

        with self.assertRaisesMessage(ValidationError, "You must agree to the reviewer guidelines"):
            submit_application(user=self.user, payload=dict(APPLICATION, agreedToRules=False))

    def test_rejection_starts_cooldown(self):
        application = submit_application(user=self.user, payload=APPLICATION)
        reject_application(application_id=application.id, admin=self.admin, notes="Not yet")

        self.assertEqual(days_until_reapply(self.user), 30)
        with self.assertRaisesMessage(PermissionDenied, "Please wait 30 more day(s)"):
            submit_application(user=self.user, payload=APPLICATION)

        ReviewerApplication.objects.filter(pk=application.pk).update(
            decision_at=timezone.now() - timedelta(days=31),
        )
        self.assertEqual(days_until_reapply(self.user), 0)
        submit_application(user=self.user, payload=APPLICATION)
        self.assertEqual(ReviewerApplication.objects.filter(user=self.user).count(), 2)


class DecisionTests(ApplicationTestMixin, TestCase):
    def setUp(self):
        self.user = self._eligible()
        self.admin = self._user("decision_admin", name="Decision Admin", role=User.Role.ADMIN)
        self.application = submit_application(user=self.user, payload=APPLICATION)

    def test_approve_promotes_and_records_moderation(self):
        approve_application(application_id=self.application.id, admin=self.admin)

        self.user.refresh_from_db()
        self.assertEqual(self.user.role, User.Role.REVIEWER)

        self.application.refresh_from_db()
        self.assertEqual(self.application.status, ReviewerApplication.Status.APPROVED)
        self.assertEqual(self.application.admin_name, "Decision Admin")
        self.assertIsNotNone(self.application.decision_at)

        action = ModerationAction.objects.get(user=self.user)
        self.assertEqual(action.action, APPROVAL_ACTION)
        self.assertEqual(action.reason, APPROVAL_REASON)
        self.assertEqual(action.previous_role, "user")
        self.assertEqual(action.new_role, "reviewer")

    def test_decided_application_cannot_be_decided_again(self):
        reject_application(application_id=self.application.id, admin=self.admin)

        with self.assertRaisesMessage(ValidationError, "Application has already been processed"):
            approve_application(application_id=self.application.id, admin=self.admin)

        self.user.refresh_from_db()
        self.assertEqual(self.user.role, User.Role.USER)

    def test_only_admins_decide(self):
        reviewer = self._user("decision_reviewer", role=User.Role.REVIEWER)
        with self.assertRaises(PermissionDenied):
            approve_application(application_id=self.application.id, admin=reviewer)

    def test_approval_never_demotes_an_admin(self):
        User.objects.filter(pk=self.user.pk).update(role=User.Role.ADMIN)

        with self.assertRaisesMessage(ValidationError, "already a reviewer or admin"):
            approve_application(application_id=self.application.id, admin=self.admin)

        self.user.refresh_from_db()
        self.assertEqual(self.user.role, User.Role.ADMIN)


class ApplicationApiTests(ApplicationTestMixin, TestCase):
    def setUp(self):
        cache.clear()
        self.user = self._eligible()
        self.admin = self._user("api_app_admin", role=User.Role.ADMIN)
        self.reviewer = self._user("api_app_reviewer", role=User.Role.REVIEWER)

    def _apply(self, payload=APPLICATION):
        return self.client.post(
            "/api/reviewer-application",
            data=json.dumps(payload),
            content_type="application/json",
        )

    def test_apply_and_read_back(self):
        self.client.force_login(self.user)

        response = self._apply()
        self.assertEqual(response.status_code, 201)
        application_id = response.json()["application"]["id"]

        response = self.client.get("/api/reviewer-application")
        self.assertEqual(response.json()["application"]["id"], application_id)
        self.assertEqual(response.json()["application"]["status"], "pending")

        response = self.client.get("/api/reviewer-application/history")
        self.assertEqual([a["id"] for a in response.json()["history"]], [application_id])

    def test_apply_requires_login(self):
        self.assertEqual(self._apply().status_code, 401)

    def test_apply_status_codes(self):
        self.client.force_login(self.reviewer)
        response = self._apply()
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "You are already a reviewer or admin")

        User.objects.filter(pk=self.user.pk).update(submissions_count=1)
        self.client.force_login(self.user)
        response = self._apply()
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"], "You do not meet the eligibility requirements")

    def test_eligibility_endpoint(self):
        self.client.force_login(self.user)
        response = self.client.get("/api/reviewer-application/eligibility")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["eligible"])
        self.assertEqual(response.json()["approvedCount"], 12)

    def test_admin_list_and_approve(self):
        application = submit_application(user=self.user, payload=APPLICATION)

        self.client.force_login(self.reviewer)
        self.assertEqual(self.client.get("/api/admin/reviewer-applications").status_code, 403)

        self.client.force_login(self.admin)
        response = self.client.get("/api/admin/reviewer-applications", {"status": "pending"})
        self.assertEqual([a["id"] for a in response.json()["applications"]], [str(application.id)])

        response = self.client.get("/api/admin/reviewer-applications", {"status": "lost"})
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            f"/api/admin/reviewer-applications/{application.id}/approve",
            data=json.dumps({"adminNotes": "Welcome aboard"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["application"]["adminNotes"], "Welcome aboard")
        self.user.refresh_from_db()
        self.assertEqual(self.user.role, User.Role.REVIEWER)
        self.assertEqual(ModerationAction.objects.get(user=self.user).reason, "Welcome aboard")

    def test_reject_unknown_application(self):
        self.client.force_login(self.admin)
        response = self.client.post(
            "/api/admin/reviewer-applications/00000000-0000-0000-0000-000000000000/reject",
            data=json.dumps({}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 404)

    def test_admin_reads_another_users_history(self):
        submit_application(user=self.user, payload=APPLICATION)

        self.client.force_login(self.admin)
        response = self.client.get("/api/reviewer-application/history", {"userId": self.user.pk})
        self.assertEqual(len(response.json()["history"]), 1)

        self.client.force_login(self.reviewer)
        response = self.client.get("/api/reviewer-application/history", {"userId": self.user.pk})
        self.assertEqual(response.json()["history"], [])
