import json
from datetime import timedelta
from io import StringIO
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from corrections.models import Correction
from corrections.services import submit_correction
from games.models import Game
from notifications import discord
from notifications.models import NotificationEvent
from notifications.services import (
    claim_event,
    deliver_due_events,
    deliver_event,
    due_events,
    retry_delay,
)
from reviews.services import approve_correction, dashboard_stats


User = get_user_model()

WEBHOOK_A = "https://discord.com/api/webhooks/1/tokA"
WEBHOOK_B = "https://discord.com/api/webhooks/2/tokB"


def _response(message_id):
    response = mock.Mock()
    response.json.return_value = {"id": message_id}
    response.raise_for_status.return_value = None
    return response


@override_settings(DISCORD_WEBHOOK_URLS=[WEBHOOK_A], NOTIFICATIONS_ASYNC=False)
class NotificationTestBase(TestCase):
    def setUp(self):
        cache.clear()
        self.submitter = User.objects.create_user(
            username="notify_submitter",
            password="testpass123",
            name="Submitter",
        )
        self.reviewer = User.objects.create_user(
            username="notify_reviewer",
            password="testpass123",
            name="Reviewer",
            role=User.Role.REVIEWER,
        )
        self.game = Game.objects.create(
            slug="shadowrun",
            title="Shadowrun",
            release_date="May 1, 2007",
            activation_type="Legacy (5x5)",
        )

        post_patcher = mock.patch("notifications.discord.requests.post")
        patch_patcher = mock.patch("notifications.discord.requests.patch")
        self.mock_post = post_patcher.start()
        self.mock_patch = patch_patcher.start()
        self.addCleanup(post_patcher.stop)
        self.addCleanup(patch_patcher.stop)
        self.mock_post.return_value = _response("111")

    def _payload(self, field, new_value):
        return {
            "gameId": str(self.game.id),
            "gameSlug": self.game.slug,
            "gameTitle": self.game.title,
            "field": field,
            "oldValue": None,
            "newValue": new_value,
            "reason": "fix typo",
        }

    def _submit(self, field, new_value):
        with self.captureOnCommitCallbacks(execute=True):
            return submit_correction(submitter=self.submitter, payload=self._payload(field, new_value))

    def _age(self, correction, seconds=30):
        Correction.objects.filter(pk=correction.pk).update(
            submitted_at=timezone.now() - timedelta(seconds=seconds),
        )


class SubmissionNotificationTests(NotificationTestBase):
    def test_first_submission_sends_new_message(self):
        correction = self._submit("releaseDate", "May 29, 2007")

        self.mock_post.assert_called_once()
        self.assertEqual(self.mock_post.call_args.args[0], WEBHOOK_A)
        self.assertEqual(self.mock_post.call_args.kwargs["params"], {"wait": "true"})
        embed = self.mock_post.call_args.kwargs["json"]["embeds"][0]
        self.assertEqual(embed["title"], "📝 New Correction Submitted")
        self.assertEqual(embed["color"], discord.SUBMITTED_COLOR)

        correction.refresh_from_db()
        self.assertEqual(correction.discord_message_ids, ["111"])
        event = NotificationEvent.objects.get()
        self.assertEqual(event.status, NotificationEvent.Status.DELIVERED)
        self.assertEqual(event.attempts, 1)

    def test_batch_edits_the_same_message(self):
        first = self._submit("releaseDate", "May 29, 2008")
        self._age(first)
        second = self._submit("developer", "FASA Studio")

        self.assertEqual(self.mock_post.call_count, 1)
        self.mock_patch.assert_called_once()
        self.assertEqual(
            self.mock_patch.call_args.args[0],
            "https://discord.com/api/webhooks/1/tokA/messages/111",
        )
        embed = self.mock_patch.call_args.kwargs["json"]["embeds"][0]
        self.assertEqual(embed["title"], "📝 2 Corrections Submitted")

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.discord_message_ids, ["111"])
        self.assertEqual(second.discord_message_ids, ["111"])

    def test_superseding_submission_edits_message(self):
        first = self._submit("releaseDate", "May 29, 2007")
        self._age(first)
        second = self._submit("releaseDate", "May 29, 2008")

        self.mock_patch.assert_called_once()
        embed = self.mock_patch.call_args.kwargs["json"]["embeds"][0]
        self.assertEqual(embed["title"], "📝 New Correction Submitted")
        values = [f["value"] for f in embed["fields"]]
        self.assertIn("May 29, 2008", values)

        second.refresh_from_db()
        self.assertEqual(second.discord_message_ids, ["111"])
        event = NotificationEvent.objects.get(linked_corrections=first)
        self.assertEqual(list(event.corrections.all()), [second])

    def test_failed_send_does_not_break_submission(self):
        self.mock_post.side_effect = requests.ConnectionError("discord down")
        self.client.force_login(self.submitter)

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(
                "/api/corrections",
                data=json.dumps(self._payload("developer", "FASA Studio")),
                content_type="application/json",
            )

        self.assertEqual(response.status_code, 201)
        event = NotificationEvent.objects.get()
        self.assertEqual(event.status, NotificationEvent.Status.PENDING)
        self.assertEqual(event.attempts, 1)
        self.assertIn("discord down", event.last_error)
        self.assertIsNotNone(event.next_attempt_at)

    @override_settings(DISCORD_WEBHOOK_URLS=[])
    def test_no_webhooks_means_no_event(self):
        self._submit("developer", "FASA Studio")

        self.mock_post.assert_not_called()
        self.assertFalse(NotificationEvent.objects.exists())


    def test_superseding_cancels_unsent_submission_message(self):
        self.mock_post.side_effect = [
            requests.ConnectionError("discord down"),
            _response("222"),
            _response("333"),
        ]
        first = self._submit("releaseDate", "May 29, 2007")
        stale = NotificationEvent.objects.get()
        self._age(first)
        second = self._submit("releaseDate", "May 29, 2008")

        deliver_due_events(now=timezone.now() + timedelta(hours=1))

        self.assertEqual(self.mock_post.call_count, 2)
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.discord_message_ids, ["222"])
        self.assertEqual(second.discord_message_ids, ["222"])
        stale.refresh_from_db()
        self.assertEqual(stale.status, NotificationEvent.Status.CANCELLED)
        self.assertIsNone(stale.next_attempt_at)

    def test_batching_cancels_unsent_submission_message(self):
        self.mock_post.side_effect = [
            requests.ConnectionError("discord down"),
            _response("222"),
            _response("333"),
        ]
        first = self._submit("releaseDate", "May 29, 2008")
        stale = NotificationEvent.objects.get()
        self._age(first)
        second = self._submit("developer", "FASA Studio")

        deliver_due_events(now=timezone.now() + timedelta(hours=1))

        self.assertEqual(self.mock_post.call_count, 2)
        embed = self.mock_post.call_args.kwargs["json"]["embeds"][0]
        self.assertEqual(embed["title"], "📝 2 Corrections Submitted")
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.discord_message_ids, ["222"])
        self.assertEqual(second.discord_message_ids, ["222"])
        stale.refresh_from_db()
        self.assertEqual(stale.status, NotificationEvent.Status.CANCELLED)

    @override_settings(DISCORD_WEBHOOK_URLS=[WEBHOOK_A, WEBHOOK_B])
    def test_replacement_message_reuses_ids_already_sent(self):
        self.mock_post.side_effect = [_response("111"), requests.ConnectionError("webhook B down")]
        first = self._submit("releaseDate", "May 29, 2007")
        self._age(first)

        self.mock_post.side_effect = None
        self.mock_post.return_value = _response("222")
        second = self._submit("releaseDate", "May 29, 2008")

        self.mock_patch.assert_called_once()
        self.assertEqual(
            self.mock_patch.call_args.args[0],
            "https://discord.com/api/webhooks/1/tokA/messages/111",
        )
        self.assertEqual(self.mock_post.call_args.args[0], WEBHOOK_B)
        second.refresh_from_db()
        self.assertEqual(second.discord_message_ids, ["111", "222"])

    def test_retry_skips_corrections_reviewed_meanwhile(self):
        self.mock_post.side_effect = requests.ConnectionError("discord down")
        correction = self._submit("developer", "FASA Studio")
        Correction.objects.filter(pk=correction.pk).update(status=Correction.Status.REJECTED)

        self.mock_post.side_effect = None
        deliver_due_events(now=timezone.now() + timedelta(hours=1))

        self.assertEqual(self.mock_post.call_count, 1)
        event = NotificationEvent.objects.get()
        self.assertEqual(event.status, NotificationEvent.Status.CANCELLED)
        self.assertEqual(event.attempts, 1)


class ReviewNotificationTests(NotificationTestBase):
    def test_approval_edits_submission_message(self):
        correction = self._submit("releaseDate", "May 29, 2008")

        with self.captureOnCommitCallbacks(execute=True):
            approve_correction(correction_id=correction.id, reviewer=self.reviewer)

        self.mock_patch.assert_called_once()
        self.assertEqual(
            self.mock_patch.call_args.args[0],
            "https://discord.com/api/webhooks/1/tokA/messages/111",
        )
        embed = self.mock_patch.call_args.kwargs["json"]["embeds"][0]
        self.assertEqual(embed["color"], 0x2ECC71)
        self.assertEqual(embed["title"], "✅ Batch Correction Approved")
        self.assertIn("**Reviewer** approved a correction", embed["description"])


    def test_review_keeps_pending_batch_members_in_message(self):
        first = self._submit("releaseDate", "May 29, 2008")
        self._age(first)
        second = self._submit("developer", "FASA Studio")

        with self.captureOnCommitCallbacks(execute=True):
            approve_correction(correction_id=first.id, reviewer=self.reviewer)

        self.assertEqual(self.mock_patch.call_count, 2)
        embed = self.mock_patch.call_args.kwargs["json"]["embeds"][0]
        self.assertEqual(embed["title"], "✅ Batch Correction Approved")
        values = [f["value"] for f in embed["fields"]]
        self.assertIn("**Correction 1:** ✅ releaseDate", values)
        self.assertIn(f"**Correction 2:** {discord.PENDING_EMOJI} developer", values)
        self.assertIn("1 correction (1 still pending)", values)

        event = NotificationEvent.objects.filter(kind=NotificationEvent.Kind.CORRECTIONS_REVIEWED).get()
        self.assertEqual(
            sorted(c.pk for c in event.corrections.all()),
            sorted([first.pk, second.pk]),
        )

    def test_reviewing_rest_of_batch_marks_all_reviewed(self):
        first = self._submit("releaseDate", "May 29, 2008")
        self._age(first)
        second = self._submit("developer", "FASA Studio")

        with self.captureOnCommitCallbacks(execute=True):
            approve_correction(correction_id=first.id, reviewer=self.reviewer)
        with self.captureOnCommitCallbacks(execute=True):
            approve_correction(correction_id=second.id, reviewer=self.reviewer)

        embed = self.mock_patch.call_args.kwargs["json"]["embeds"][0]
        self.assertEqual(embed["title"], "✅ Batch Corrections (2) Approved")
        self.assertNotIn(discord.PENDING_EMOJI, json.dumps(embed, ensure_ascii=False))


class RetryTests(NotificationTestBase):
    def test_retry_delay_backs_off(self):
        self.assertEqual(retry_delay(1), timedelta(seconds=30))
        self.assertEqual(retry_delay(2), timedelta(seconds=60))
        self.assertEqual(retry_delay(4), timedelta(seconds=240))

    def test_retry_succeeds_later(self):
        self.mock_post.side_effect = requests.ConnectionError("discord down")
        correction = self._submit("developer", "FASA Studio")

        event = NotificationEvent.objects.get()
        self.assertEqual(deliver_due_events(now=timezone.now()), [])

        self.mock_post.side_effect = None
        self.mock_post.return_value = _response("999")
        events = deliver_due_events(now=timezone.now() + timedelta(minutes=5))

        self.assertEqual([e.pk for e in events], [event.pk])
        event.refresh_from_db()
        self.assertEqual(event.status, NotificationEvent.Status.DELIVERED)
        self.assertEqual(event.attempts, 2)
        correction.refresh_from_db()
        self.assertEqual(correction.discord_message_ids, ["999"])

    @override_settings(NOTIFICATION_MAX_ATTEMPTS=2)
    def test_marked_failed_after_max_attempts(self):
        self.mock_post.side_effect = requests.ConnectionError("discord down")
        self._submit("developer", "FASA Studio")

        deliver_due_events(now=timezone.now() + timedelta(hours=1))

        event = NotificationEvent.objects.get()
        self.assertEqual(event.status, NotificationEvent.Status.FAILED)
        self.assertEqual(event.attempts, 2)
        self.assertIsNone(event.next_attempt_at)
        self.assertEqual(dashboard_stats()["failedNotifications"], 1)

        self.assertEqual(deliver_due_events(now=timezone.now() + timedelta(days=1)), [])

    @override_settings(DISCORD_WEBHOOK_URLS=[WEBHOOK_A, WEBHOOK_B])
    def test_partial_success_keeps_ids_and_resends_missing(self):
        self.mock_post.side_effect = [_response("111"), requests.ConnectionError("webhook B down")]
        correction = self._submit("developer", "FASA Studio")

        correction.refresh_from_db()
        self.assertEqual(correction.discord_message_ids, ["111", None])
        event = NotificationEvent.objects.get()
        self.assertEqual(event.status, NotificationEvent.Status.PENDING)

        self.mock_post.side_effect = None
        self.mock_post.return_value = _response("222")
        deliver_due_events(now=timezone.now() + timedelta(hours=1))

        self.mock_patch.assert_called_once()
        self.assertEqual(
            self.mock_patch.call_args.args[0],
            "https://discord.com/api/webhooks/1/tokA/messages/111",
        )
        self.assertEqual(self.mock_post.call_args.args[0], WEBHOOK_B)

        correction.refresh_from_db()
        self.assertEqual(correction.discord_message_ids, ["111", "222"])
        event.refresh_from_db()
        self.assertEqual(event.status, NotificationEvent.Status.DELIVERED)

    def test_command_reports_summary(self):
        self.mock_post.side_effect = requests.ConnectionError("discord down")
        self._submit("developer", "FASA Studio")
        NotificationEvent.objects.update(next_attempt_at=timezone.now() - timedelta(seconds=1))

        self.mock_post.side_effect = None
        out = StringIO()
        call_command("deliver_notifications", stdout=out)

        self.assertIn("attempted=1", out.getvalue())
        self.assertIn("delivered=1", out.getvalue())
        self.assertEqual(
            NotificationEvent.objects.get().status,
            NotificationEvent.Status.DELIVERED,
        )


    def test_event_is_claimed_by_one_worker(self):
        self.mock_post.side_effect = requests.ConnectionError("discord down")
        self._submit("developer", "FASA Studio")
        now = timezone.now() + timedelta(hours=1)

        first_copy = NotificationEvent.objects.get()
        second_copy = NotificationEvent.objects.get()

        self.assertTrue(claim_event(first_copy, now))
        self.assertFalse(claim_event(second_copy, now))
        self.assertFalse(due_events(now).exists())

    def test_concurrent_delivery_sends_once(self):
        self.mock_post.side_effect = requests.ConnectionError("discord down")
        self._submit("developer", "FASA Studio")
        self.mock_post.side_effect = None
        self.mock_post.return_value = _response("222")
        now = timezone.now() + timedelta(hours=1)

        first_copy = NotificationEvent.objects.get()
        second_copy = NotificationEvent.objects.get()

        self.assertIsNotNone(deliver_event(first_copy, now=now))
        self.assertIsNone(deliver_event(second_copy, now=now))
        self.assertEqual(self.mock_post.call_count, 2)
        self.assertEqual(
            NotificationEvent.objects.get().status,
            NotificationEvent.Status.DELIVERED,
        )


class MessageBuilderTests(TestCase):
    def test_format_value(self):
        self.assertEqual(discord.format_value(None), "*empty*")
        self.assertEqual(discord.format_value(["Action", "Shooter"]), "Action, Shooter")
        self.assertEqual(discord.format_value(True), "Yes")
        self.assertEqual(discord.format_value("x" * 300)[-3:], "...")
        self.assertEqual(len(discord.format_value("x" * 300)), 203)

    def test_edit_rejects_bad_webhook_url(self):
        with self.assertRaises(discord.WebhookError):
            discord.edit_message("https://example.com/hook", "111", {})
