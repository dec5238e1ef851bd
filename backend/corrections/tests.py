import json
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import Client, TestCase
from django.utils import timezone

from corrections.models import Correction
from corrections.services import SUPERSEDED_NOTE, submit_correction
from corrections.state_machine import can_transition, validate_transition
from corrections.validation import clean_field_value
from games.models import Game


User = get_user_model()


class CorrectionTestMixin:
    def _game(self, slug="shadowrun", title="Shadowrun", **fields):
        fields.setdefault("activation_type", "Legacy (5x5)")
        return Game.objects.create(slug=slug, title=title, **fields)

    def _payload(self, game, field, new_value, old_value=None, reason="fix typo"):
        return {
            "gameId": str(game.id),
            "gameSlug": game.slug,
            "gameTitle": game.title,
            "field": field,
            "oldValue": old_value,
            "newValue": new_value,
            "reason": reason,
        }

    def _post(self, payload):
        return self.client.post(
            "/api/corrections",
            data=json.dumps(payload),
            content_type="application/json",
        )

    def _age(self, correction, seconds):
        Correction.objects.filter(pk=correction.pk).update(
            submitted_at=timezone.now() - timedelta(seconds=seconds),
        )


class CorrectionStateMachineTests(TestCase):
    def test_only_pending_moves(self):
        self.assertTrue(can_transition("pending", "approved"))
        self.assertTrue(can_transition("pending", "superseded"))
        self.assertFalse(can_transition("approved", "rejected"))
        self.assertFalse(can_transition("superseded", "pending"))

    def test_reviewing_twice_reports_already_reviewed(self):
        with self.assertRaisesMessage(ValidationError, "Correction has already been reviewed"):
            validate_transition("approved", "approved")

    def test_invalid_transition_message(self):
        with self.assertRaisesMessage(ValidationError, "Invalid Correction state transition"):
            validate_transition("rejected", "superseded")


class CorrectionValidationTests(TestCase):
    def test_unknown_field(self):
        with self.assertRaisesMessage(ValidationError, "Invalid field"):
            clean_field_value("favouriteColour", "blue")

    def test_required_fields_cannot_be_cleared(self):
        for field in ("title", "status", "activationType"):
            with self.assertRaisesMessage(ValidationError, "cannot be cleared"):
                clean_field_value(field, "")

    def test_optional_field_clears_to_none(self):
        self.assertIsNone(clean_field_value("publisher", ""))
        self.assertIsNone(clean_field_value("genres", []))

    def test_text_is_sanitized(self):
        self.assertEqual(clean_field_value("developer", "  FASA\x00 Studio  "), "FASA Studio")

    def test_link_domain_rules(self):
        with self.assertRaisesMessage(ValidationError, "Discord link must be from"):
            clean_field_value("discordLink", "https://example.com/invite")
        self.assertEqual(
            clean_field_value("discordLink", "https://discord.gg/gfwl"),
            "https://discord.gg/gfwl",
        )
        self.assertEqual(
            clean_field_value("wikiLink", "https://www.pcgamingwiki.com/wiki/Shadowrun"),
            "https://www.pcgamingwiki.com/wiki/Shadowrun",
        )

    def test_blocked_domains_and_shorteners(self):
        with self.assertRaisesMessage(ValidationError, "URL shorteners are not allowed"):
            clean_field_value("purchaseLink", "https://bit.ly/abc")
        with self.assertRaisesMessage(ValidationError, "not allowed for security reasons"):
            clean_field_value("purchaseLink", "https://boards.4chan.org/v/")

    def test_direct_downloads_only_in_download_fields(self):
        with self.assertRaisesMessage(ValidationError, "Direct download links are not allowed"):
            clean_field_value("imageUrl", "https://example.com/setup.exe")
        self.assertEqual(
            clean_field_value("downloadLink", "https://example.com/setup.exe"),
            "https://example.com/setup.exe",
        )

    def test_malformed_url(self):
        with self.assertRaisesMessage(ValidationError, "Invalid URL format"):
            clean_field_value("purchaseLink", "not a url")

    def test_boolean_field(self):
        self.assertTrue(clean_field_value("isUnplayable", True))
        with self.assertRaises(ValidationError):
            clean_field_value("isUnplayable", "yes")


class SubmitCorrectionTests(CorrectionTestMixin, TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="submitter", password="testpass123")
        self.game = self._game(release_date="May 1, 2007")

    def test_same_field_resubmission_supersedes(self):
        self.client.force_login(self.user)

        response = self._post(
            self._payload(self.game, "releaseDate", "May 29, 2007", old_value="May 1, 2007")
        )
        self.assertEqual(response.status_code, 201)
        first_id = response.json()["correction"]["id"]
        self.assertEqual(response.json()["correction"]["status"], "pending")

        self.user.refresh_from_db()
        self.assertEqual(self.user.submissions_count, 1)

        first = Correction.objects.get(pk=first_id)
        self._age(first, 30)

        response = self._post(
            self._payload(self.game, "releaseDate", "May 29, 2008", old_value="May 1, 2007")
        )
        self.assertEqual(response.status_code, 201)
        second = Correction.objects.get(pk=response.json()["correction"]["id"])

        first.refresh_from_db()
        self.assertEqual(first.status, Correction.Status.SUPERSEDED)
        self.assertEqual(first.review_notes, SUPERSEDED_NOTE)
        self.assertIsNotNone(first.reviewed_at)
        self.assertEqual(second.status, Correction.Status.PENDING)
        self.assertEqual(second.new_value, "May 29, 2008")

        self.user.refresh_from_db()
        self.assertEqual(self.user.submissions_count, 2)

    def test_at_most_one_pending_per_field(self):
        for index, value in enumerate(["May 2, 2007", "May 3, 2007", "May 4, 2007"]):
            correction = submit_correction(
                submitter=self.user,
                payload=self._payload(self.game, "releaseDate", value),
            )
            self._age(correction, 60 - index * 10)

        pending = Correction.objects.filter(status=Correction.Status.PENDING)
        self.assertEqual(pending.count(), 1)
        self.assertEqual(pending.get().new_value, "May 4, 2007")
        self.assertEqual(
            Correction.objects.filter(status=Correction.Status.SUPERSEDED).count(),
            2,
        )

    def test_different_field_joins_batch(self):
        first = submit_correction(
            submitter=self.user,
            payload=self._payload(self.game, "releaseDate", "May 29, 2008"),
        )
        self._age(first, 30)
        second = submit_correction(
            submitter=self.user,
            payload=self._payload(self.game, "developer", "FASA Studio"),
        )

        first.refresh_from_db()
        self.assertEqual(first.status, Correction.Status.PENDING)
        self.assertEqual(second.status, Correction.Status.PENDING)

    def test_older_than_window_is_not_superseded(self):
        first = submit_correction(
            submitter=self.user,
            payload=self._payload(self.game, "releaseDate", "May 29, 2007"),
        )
        self._age(first, 11 * 60)

        submit_correction(
            submitter=self.user,
            payload=self._payload(self.game, "releaseDate", "May 29, 2008"),
        )

        first.refresh_from_db()
        self.assertEqual(first.status, Correction.Status.PENDING)
        self.assertEqual(Correction.objects.filter(status=Correction.Status.PENDING).count(), 2)

    def test_other_users_are_independent(self):
        other = User.objects.create_user(username="other_submitter", password="testpass123")
        mine = submit_correction(
            submitter=self.user,
            payload=self._payload(self.game, "releaseDate", "May 29, 2007"),
        )
        self._age(mine, 30)

        submit_correction(
            submitter=other,
            payload=self._payload(self.game, "releaseDate", "May 29, 2008"),
        )

        mine.refresh_from_db()
        self.assertEqual(mine.status, Correction.Status.PENDING)

    def test_other_games_are_independent(self):
        other_game = self._game(slug="halo-2", title="Halo 2")
        mine = submit_correction(
            submitter=self.user,
            payload=self._payload(self.game, "releaseDate", "May 29, 2007"),
        )
        self._age(mine, 30)

        submit_correction(
            submitter=self.user,
            payload=self._payload(other_game, "releaseDate", "May 31, 2007"),
        )

        mine.refresh_from_db()
        self.assertEqual(mine.status, Correction.Status.PENDING)

    def test_clearing_value_is_stored_as_null(self):
        correction = submit_correction(
            submitter=self.user,
            payload=self._payload(self.game, "publisher", None, old_value="MGS"),
        )
        self.assertIsNone(correction.new_value)


class SubmitCorrectionApiTests(CorrectionTestMixin, TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="api_submitter", password="testpass123")
        self.game = self._game()

    def test_requires_login(self):
        response = self._post(self._payload(self.game, "developer", "FASA Studio"))
        self.assertEqual(response.status_code, 401)

    def test_suspended_and_blocked_users_are_rejected(self):
        for status in (User.Status.SUSPENDED, User.Status.BLOCKED, User.Status.RESTRICTED):
            self.user.status = status
            self.user.save(update_fields=["status"])
            self.client.force_login(self.user)

            response = self._post(self._payload(self.game, "developer", "FASA Studio"))

            self.assertEqual(response.status_code, 403)
            self.assertEqual(response.json()["detail"], "Your account is suspended or blocked")
            self.assertEqual(response.json()["userStatus"], status)

        self.assertFalse(Correction.objects.exists())
        self.user.refresh_from_db()
        self.assertEqual(self.user.submissions_count, 0)

    def test_missing_reason(self):
        self.client.force_login(self.user)
        response = self._post(self._payload(self.game, "developer", "FASA Studio", reason=""))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Missing required fields")

    def test_invalid_field(self):
        self.client.force_login(self.user)
        response = self._post(self._payload(self.game, "favouriteColour", "blue"))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Invalid field")

    def test_title_cannot_be_cleared(self):
        self.client.force_login(self.user)
        response = self._post(self._payload(self.game, "title", ""))

        self.assertEqual(response.status_code, 400)
        self.assertIn("cannot be cleared", response.json()["detail"])

    def test_wrong_link_domain(self):
        self.client.force_login(self.user)
        response = self._post(self._payload(self.game, "redditLink", "https://example.com/r/gfwl"))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["detail"],
            "Reddit link must be from reddit.com or redd.it",
        )

    def test_unknown_game(self):
        self.client.force_login(self.user)
        payload = self._payload(self.game, "developer", "FASA Studio")
        payload["gameSlug"] = "no-such-game"

        response = self._post(payload)
        self.assertEqual(response.status_code, 404)

    def test_game_id_must_match_slug(self):
        other = self._game(slug="halo-2", title="Halo 2")
        self.client.force_login(self.user)
        payload = self._payload(self.game, "developer", "FASA Studio")
        payload["gameId"] = str(other.id)

        response = self._post(payload)
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Correction.objects.exists())

    def test_invalid_json(self):
        self.client.force_login(self.user)
        response = self.client.post(
            "/api/corrections",
            data="{not json",
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)


class ListCorrectionsApiTests(CorrectionTestMixin, TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="lister", password="testpass123")
        self.other = User.objects.create_user(username="lister_other", password="testpass123")
        self.reviewer = User.objects.create_user(
            username="lister_reviewer",
            password="testpass123",
            role=User.Role.REVIEWER,
        )
        self.game = self._game()
        self.mine = submit_correction(
            submitter=self.user,
            payload=self._payload(self.game, "developer", "FASA Studio"),
        )
        self._age(self.mine, 120)
        self.theirs = submit_correction(
            submitter=self.other,
            payload=self._payload(self.game, "publisher", "MGS"),
        )

    def test_plain_user_sees_only_own(self):
        self.client.force_login(self.user)
        response = self.client.get("/api/corrections", {"userId": self.other.pk})

        self.assertEqual(response.status_code, 200)
        ids = [c["id"] for c in response.json()["corrections"]]
        self.assertEqual(ids, [str(self.mine.id)])

    def test_reviewer_pending_queue_is_oldest_first(self):
        self.client.force_login(self.reviewer)
        response = self.client.get("/api/corrections", {"status": "pending"})

        ids = [c["id"] for c in response.json()["corrections"]]
        self.assertEqual(ids, [str(self.mine.id), str(self.theirs.id)])

    def test_reviewer_filters_by_user(self):
        self.client.force_login(self.reviewer)
        response = self.client.get("/api/corrections", {"userId": self.other.pk})

        ids = [c["id"] for c in response.json()["corrections"]]
        self.assertEqual(ids, [str(self.theirs.id)])

    def test_reviewer_rejects_unknown_status(self):
        self.client.force_login(self.reviewer)
        response = self.client.get("/api/corrections", {"status": "lost"})
        self.assertEqual(response.status_code, 400)


class CsrfTests(CorrectionTestMixin, TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="csrf_submitter", password="testpass123")
        self.game = self._game()
        self.client = Client(enforce_csrf_checks=True)
        self.client.force_login(self.user)

    def test_post_without_token_is_forbidden(self):
        response = self._post(self._payload(self.game, "developer", "FASA Studio"))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json(), {"detail": "Invalid CSRF token."})
        self.assertFalse(Correction.objects.exists())

    def test_post_with_wrong_token_is_forbidden(self):
        self.client.get("/api/csrf-token")
        response = self.client.post(
            "/api/corrections",
            data=json.dumps(self._payload(self.game, "developer", "FASA Studio")),
            content_type="application/json",
            HTTP_X_CSRF_TOKEN="x" * 64,
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"], "Invalid CSRF token.")

    def test_post_with_issued_token_succeeds(self):
        token = self.client.get("/api/csrf-token").json()["csrfToken"]

        response = self.client.post(
            "/api/corrections",
            data=json.dumps(self._payload(self.game, "developer", "FASA Studio")),
            content_type="application/json",
            HTTP_X_CSRF_TOKEN=token,
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(Correction.objects.get().new_value, "FASA Studio")
