import json
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import PermissionDenied, ValidationError
from django.test import TestCase, override_settings
from django.utils import timezone

from corrections.models import Correction
from corrections.services import submit_correction
from games.models import Game, GameUpdate
from reviews.models import AuditLog, ReviewerAction
from reviews.services import (
    approve_correction,
    dashboard_stats,
    reject_correction,
    review_batch,
    review_correction,
    shared_message_ids,
)


User = get_user_model()


class ReviewTestMixin:
    def _setup_people_and_game(self):
        cache.clear()
        self.submitter = User.objects.create_user(
            username="submitter",
            password="testpass123",
            name="Submitter",
        )
        self.reviewer = User.objects.create_user(
            username="reviewer1",
            password="testpass123",
            name="Reviewer One",
            role=User.Role.REVIEWER,
        )
        self.admin = User.objects.create_user(
            username="admin1",
            password="testpass123",
            role=User.Role.ADMIN,
        )
        self.game = Game.objects.create(
            slug="shadowrun",
            title="Shadowrun",
            release_date="May 1, 2007",
            activation_type="Legacy (5x5)",
        )

    def _submit(self, field, new_value, old_value=None, user=None, age=None):
        correction = submit_correction(
            submitter=user or self.submitter,
            payload={
                "gameId": str(self.game.id),
                "gameSlug": self.game.slug,
                "gameTitle": self.game.title,
                "field": field,
                "oldValue": old_value,
                "newValue": new_value,
                "reason": "fix typo",
            },
        )
        if age is not None:
            Correction.objects.filter(pk=correction.pk).update(
                submitted_at=timezone.now() - timedelta(seconds=age),
            )
            correction.refresh_from_db()
        return correction


class ReviewServicesTests(ReviewTestMixin, TestCase):
    def setUp(self):
        self._setup_people_and_game()

    def test_approve_applies_value_and_writes_audit_log(self):
        self._submit("releaseDate", "May 29, 2007", old_value="May 1, 2007", age=30)
        pending = self._submit("releaseDate", "May 29, 2008", old_value="May 1, 2007")

        correction = approve_correction(correction_id=pending.id, reviewer=self.reviewer)

        self.assertEqual(correction.status, Correction.Status.APPROVED)
        self.assertEqual(correction.reviewed_by, self.reviewer)
        self.assertEqual(correction.reviewed_by_name, "Reviewer One")

        self.game.refresh_from_db()
        self.assertEqual(self.game.release_date, "May 29, 2008")

        log = AuditLog.objects.get(correction=correction)
        self.assertEqual(log.field, "releaseDate")
        self.assertEqual(log.old_value, "May 1, 2007")
        self.assertEqual(log.new_value, "May 29, 2008")
        self.assertEqual(log.changed_by, self.reviewer)
        self.assertEqual(log.changed_by_role, "reviewer")
        self.assertEqual(log.submitted_by_name, "Submitter")

        update = GameUpdate.objects.get(game=self.game)
        self.assertEqual(update.update_type, GameUpdate.UpdateType.CORRECTION)
        self.assertEqual(update.submitter_name, "Submitter")

        self.submitter.refresh_from_db()
        self.assertEqual(self.submitter.submissions_count, 2)
        self.assertEqual(self.submitter.approved_count, 1)
        self.assertEqual(self.submitter.rejected_count, 0)

    def test_second_review_is_refused(self):
        pending = self._submit("developer", "FASA Studio")
        approve_correction(correction_id=pending.id, reviewer=self.reviewer)

        with self.assertRaisesMessage(ValidationError, "Correction has already been reviewed"):
            approve_correction(correction_id=pending.id, reviewer=self.admin)
        with self.assertRaisesMessage(ValidationError, "Correction has already been reviewed"):
            reject_correction(correction_id=pending.id, reviewer=self.admin)

        self.assertEqual(AuditLog.objects.filter(correction=pending).count(), 1)
        self.submitter.refresh_from_db()
        self.assertEqual(self.submitter.approved_count, 1)
        self.assertEqual(self.submitter.rejected_count, 0)

    def test_superseded_cannot_be_reviewed(self):
        old = self._submit("developer", "FASA", age=30)
        self._submit("developer", "FASA Studio")

        with self.assertRaises(ValidationError):
            approve_correction(correction_id=old.id, reviewer=self.reviewer)

        old.refresh_from_db()
        self.assertEqual(old.status, Correction.Status.SUPERSEDED)
        self.assertFalse(AuditLog.objects.exists())

    def test_reject_leaves_game_untouched(self):
        pending = self._submit("releaseDate", "Jan 1, 1999")

        correction = reject_correction(
            correction_id=pending.id,
            reviewer=self.reviewer,
            notes="No source",
        )

        self.assertEqual(correction.status, Correction.Status.REJECTED)
        self.assertEqual(correction.review_notes, "No source")
        self.game.refresh_from_db()
        self.assertEqual(self.game.release_date, "May 1, 2007")
        self.assertFalse(AuditLog.objects.exists())
        self.assertEqual(
            ReviewerAction.objects.get(correction=pending).action,
            ReviewerAction.Action.REJECT,
        )

        self.submitter.refresh_from_db()
        self.assertEqual(self.submitter.rejected_count, 1)
        self.assertEqual(self.submitter.approved_count, 0)

    def test_modified_uses_final_value_and_counts_as_approved(self):
        pending = self._submit("developer", "FASA")

        correction = review_correction(
            correction_id=pending.id,
            reviewer=self.reviewer,
            decision=Correction.Status.MODIFIED,
            final_value="FASA Studio",
        )

        self.assertEqual(correction.final_value, "FASA Studio")
        self.game.refresh_from_db()
        self.assertEqual(self.game.developer, "FASA Studio")
        self.assertEqual(AuditLog.objects.get(correction=pending).new_value, "FASA Studio")
        self.submitter.refresh_from_db()
        self.assertEqual(self.submitter.approved_count, 1)

    def test_modified_requires_final_value(self):
        pending = self._submit("developer", "FASA")

        with self.assertRaises(ValidationError):
            review_correction(
                correction_id=pending.id,
                reviewer=self.reviewer,
                decision=Correction.Status.MODIFIED,
            )

        pending.refresh_from_db()
        self.assertEqual(pending.status, Correction.Status.PENDING)

    def test_final_value_is_validated(self):
        pending = self._submit("discordLink", "https://discord.gg/gfwl")

        with self.assertRaises(ValidationError):
            approve_correction(
                correction_id=pending.id,
                reviewer=self.reviewer,
                final_value="https://example.com/not-discord",
            )

    def test_approved_clear_empties_field(self):
        self.game.publisher = "MGS"
        self.game.save()
        pending = self._submit("publisher", None, old_value="MGS")

        approve_correction(correction_id=pending.id, reviewer=self.reviewer)

        self.game.refresh_from_db()
        self.assertEqual(self.game.publisher, "")

    def test_regular_user_cannot_review(self):
        pending = self._submit("developer", "FASA")
        other = User.objects.create_user(username="nobody", password="testpass123")

        with self.assertRaises(PermissionDenied):
            approve_correction(correction_id=pending.id, reviewer=other)

    def test_self_review_is_blocked(self):
        pending = self._submit("developer", "FASA", user=self.reviewer)

        with self.assertRaises(PermissionDenied):
            approve_correction(correction_id=pending.id, reviewer=self.reviewer)

    @override_settings(DEVELOPER_EMAILS=["dev@example.com"])
    def test_developer_may_review_own(self):
        developer = User.objects.create_user(
            username="dev",
            password="testpass123",
            email="dev@example.com",
            role=User.Role.ADMIN,
        )
        pending = self._submit("developer", "FASA", user=developer)

        correction = approve_correction(correction_id=pending.id, reviewer=developer)
        self.assertEqual(correction.status, Correction.Status.APPROVED)

    def test_counters_match_reviewed_corrections(self):
        first = self._submit("developer", "FASA")
        second = self._submit("publisher", "MGS")
        third = self._submit("description", "Team shooter")

        approve_correction(correction_id=first.id, reviewer=self.reviewer)
        reject_correction(correction_id=second.id, reviewer=self.reviewer)
        approve_correction(correction_id=third.id, reviewer=self.admin)

        self.submitter.refresh_from_db()
        self.assertEqual(
            self.submitter.approved_count,
            Correction.objects.filter(
                submitted_by=self.submitter,
                status__in=[Correction.Status.APPROVED, Correction.Status.MODIFIED],
            ).count(),
        )
        self.assertEqual(
            self.submitter.rejected_count,
            Correction.objects.filter(
                submitted_by=self.submitter,
                status=Correction.Status.REJECTED,
            ).count(),
        )
        self.assertEqual(self.submitter.approval_rate, 67)

    def test_dashboard_stats(self):
        approved = self._submit("developer", "FASA")
        self._submit("publisher", "MGS")
        approve_correction(correction_id=approved.id, reviewer=self.reviewer)

        stats = dashboard_stats()

        self.assertEqual(stats["totalSubmissions"], 2)
        self.assertEqual(stats["pendingSubmissions"], 1)
        self.assertEqual(stats["approvedSubmissions"], 1)
        self.assertEqual(stats["totalChanges"], 1)
        self.assertEqual(stats["totalUsers"], 3)
        self.assertEqual(stats["failedNotifications"], 0)


class ReviewBatchTests(ReviewTestMixin, TestCase):
    def setUp(self):
        self._setup_people_and_game()

    def test_batch_reviews_each_item_and_skips_bad_ones(self):
        first = self._submit("developer", "FASA")
        second = self._submit("publisher", "MGS")
        done = self._submit("description", "Team shooter")
        approve_correction(correction_id=done.id, reviewer=self.reviewer)

        reviewed, skipped = review_batch(
            reviewer=self.reviewer,
            reviews=[
                {"correctionId": str(first.id), "status": "approved"},
                {"correctionId": str(second.id), "status": "rejected", "reviewNotes": "No source"},
                {"correctionId": str(done.id), "status": "rejected"},
                {"correctionId": "not-a-uuid", "status": "approved"},
            ],
        )

        self.assertEqual([c.id for c in reviewed], [first.id, second.id])
        self.assertEqual(len(skipped), 2)
        self.assertEqual(skipped[0]["detail"], "Correction has already been reviewed")

        done.refresh_from_db()
        self.assertEqual(done.status, Correction.Status.APPROVED)
        self.submitter.refresh_from_db()
        self.assertEqual(self.submitter.approved_count, 2)
        self.assertEqual(self.submitter.rejected_count, 1)

    def test_batch_requires_items(self):
        with self.assertRaises(ValidationError):
            review_batch(reviewer=self.reviewer, reviews=[])

    def test_shared_message_ids(self):
        first = self._submit("developer", "FASA")
        second = self._submit("publisher", "MGS")
        Correction.objects.update(discord_message_ids=["111", "222"])

        self.assertEqual(
            shared_message_ids(Correction.objects.filter(pk__in=[first.pk, second.pk])),
            ["111", "222"],
        )

        Correction.objects.filter(pk=second.pk).update(discord_message_ids=["333", "222"])
        self.assertEqual(
            shared_message_ids(Correction.objects.filter(pk__in=[first.pk, second.pk])),
            [],
        )


class ReviewApiTests(ReviewTestMixin, TestCase):
    def setUp(self):
        self._setup_people_and_game()

    def _review(self, body):
        return self.client.post(
            "/api/corrections/review",
            data=json.dumps(body),
            content_type="application/json",
        )

    def test_review_requires_reviewer(self):
        pending = self._submit("developer", "FASA")

        self.client.force_login(self.submitter)
        response = self._review({"correctionId": str(pending.id), "status": "approved"})
        self.assertEqual(response.status_code, 403)

    def test_review_endpoint_approves(self):
        pending = self._submit("developer", "FASA")

        self.client.force_login(self.reviewer)
        response = self._review(
            {"correctionId": str(pending.id), "status": "approved", "reviewNotes": "Checked"}
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["correction"]["status"], "approved")
        self.assertEqual(data["correction"]["reviewNotes"], "Checked")

    def test_review_twice_returns_400(self):
        pending = self._submit("developer", "FASA")
        approve_correction(correction_id=pending.id, reviewer=self.admin)

        self.client.force_login(self.reviewer)
        response = self._review({"correctionId": str(pending.id), "status": "approved"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Correction has already been reviewed")
        self.assertEqual(AuditLog.objects.count(), 1)

    def test_review_unknown_correction(self):
        self.client.force_login(self.reviewer)
        response = self._review(
            {"correctionId": "6f0c7c2e-8d1b-4a57-9a8e-1f2b3c4d5e6f", "status": "approved"}
        )
        self.assertEqual(response.status_code, 404)

    def test_review_invalid_status(self):
        pending = self._submit("developer", "FASA")

        self.client.force_login(self.reviewer)
        response = self._review({"correctionId": str(pending.id), "status": "superseded"})
        self.assertEqual(response.status_code, 400)

    def test_review_missing_fields(self):
        self.client.force_login(self.reviewer)
        response = self._review({"status": "approved"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Missing required fields")

    def test_batch_endpoint(self):
        first = self._submit("developer", "FASA")
        second = self._submit("publisher", "MGS")

        self.client.force_login(self.reviewer)
        response = self.client.post(
            "/api/corrections/review-batch",
            data=json.dumps(
                {
                    "reviews": [
                        {"correctionId": str(first.id), "status": "approved"},
                        {"correctionId": str(second.id), "status": "rejected"},
                    ]
                }
            ),
            content_type="application/json",
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["processed"], 2)
        self.assertEqual(data["skipped"], [])

    def test_audit_logs_admin_only(self):
        pending = self._submit("developer", "FASA")
        approve_correction(correction_id=pending.id, reviewer=self.reviewer)

        self.client.force_login(self.reviewer)
        self.assertEqual(self.client.get("/api/audit-logs").status_code, 403)

        self.client.force_login(self.admin)
        response = self.client.get("/api/audit-logs", {"gameSlug": "shadowrun"})

        self.assertEqual(response.status_code, 200)
        logs = response.json()["logs"]
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0]["correctionId"], str(pending.id))
        self.assertEqual(logs[0]["newValue"], "FASA")

    def test_dashboard_stats_endpoint(self):
        self._submit("developer", "FASA")

        self.client.force_login(self.submitter)
        self.assertEqual(self.client.get("/api/dashboard/stats").status_code, 403)

        self.client.force_login(self.reviewer)
        response = self.client.get("/api/dashboard/stats")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["pendingSubmissions"], 1)
