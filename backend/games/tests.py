import json

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import TestCase

from games.models import Game, GameUpdate
from games.services import admin_edit_game, missing_publish_fields, publish_game
from reviews.models import AuditLog


User = get_user_model()


class PublishGameTests(TestCase):
    def setUp(self):
        cache.clear()
        self.admin = User.objects.create_user(
            username="publisher_admin",
            password="testpass123",
            role=User.Role.ADMIN,
        )
        self.game = Game.objects.create(
            slug="shadowrun",
            title="Shadowrun",
            release_date="May 29, 2007",
            developer="FASA Studio",
            activation_type="Legacy (5x5)",
        )

    def test_missing_publisher_blocks_publish(self):
        self.assertEqual(missing_publish_fields(self.game), ["publisher"])

        with self.assertRaises(ValidationError):
            publish_game(game=self.game, admin=self.admin)

        self.game.refresh_from_db()
        self.assertFalse(self.game.feature_enabled)
        self.assertIsNone(self.game.published_at)
        self.assertFalse(GameUpdate.objects.exists())

    def test_publish_endpoint_reports_missing_fields(self):
        self.client.force_login(self.admin)
        response = self.client.post("/api/games/shadowrun/publish")

        self.assertEqual(response.status_code, 400)
        self.assertIn("minimum required fields", response.json()["detail"])
        self.assertIn("publisher", response.json()["detail"])

        self.game.refresh_from_db()
        self.assertFalse(self.game.feature_enabled)

    def test_publish_complete_game(self):
        self.game.publisher = "Microsoft Game Studios"
        self.game.save()

        self.client.force_login(self.admin)
        response = self.client.post("/api/games/shadowrun/publish")

        self.assertEqual(response.status_code, 200)
        self.game.refresh_from_db()
        self.assertTrue(self.game.feature_enabled)
        self.assertEqual(self.game.published_by, self.admin)
        self.assertEqual(
            GameUpdate.objects.get(game=self.game).update_type,
            GameUpdate.UpdateType.PUBLISH,
        )

    def test_publish_requires_admin(self):
        reviewer = User.objects.create_user(
            username="publisher_reviewer",
            password="testpass123",
            role=User.Role.REVIEWER,
        )
        self.client.force_login(reviewer)
        response = self.client.post("/api/games/shadowrun/publish")
        self.assertEqual(response.status_code, 403)

    def test_publish_unknown_game(self):
        self.client.force_login(self.admin)
        response = self.client.post("/api/games/does-not-exist/publish")
        self.assertEqual(response.status_code, 404)


class AdminEditTests(TestCase):
    def setUp(self):
        cache.clear()
        self.admin = User.objects.create_user(
            username="edit_admin",
            password="testpass123",
            name="Edit Admin",
            role=User.Role.ADMIN,
        )
        self.game = Game.objects.create(
            slug="gears-of-war",
            title="Gears of War",
            developer="Epic Games",
            genres=["Shooter"],
            activation_type="Legacy (5x5)",
        )

    def test_each_changed_field_gets_audit_log(self):
        logs = admin_edit_game(
            game=self.game,
            admin=self.admin,
            changes={
                "developer": "Epic Games",
                "publisher": "Microsoft Game Studios",
                "genres": ["Shooter", "Action"],
            },
            notes="Cleanup",
        )

        self.assertEqual(sorted(log.field for log in logs), ["genres", "publisher"])
        self.game.refresh_from_db()
        self.assertEqual(self.game.publisher, "Microsoft Game Studios")
        self.assertEqual(self.game.genres, ["Shooter", "Action"])

        log = AuditLog.objects.get(field="publisher")
        self.assertIsNone(log.correction)
        self.assertEqual(log.old_value, "")
        self.assertEqual(log.changed_by_name, "Edit Admin")
        self.assertEqual(log.changed_by_role, "admin")

    def test_clearing_records_history_note(self):
        admin_edit_game(game=self.game, admin=self.admin, changes={"genres": []})

        self.game.refresh_from_db()
        self.assertEqual(self.game.genres, [])
        update = GameUpdate.objects.get(game=self.game, field="genres")
        self.assertEqual(update.notes, "Field cleared")

    def test_title_cannot_be_cleared(self):
        with self.assertRaises(ValidationError):
            admin_edit_game(game=self.game, admin=self.admin, changes={"title": ""})

        self.game.refresh_from_db()
        self.assertEqual(self.game.title, "Gears of War")

    def test_patch_endpoint(self):
        self.client.force_login(self.admin)
        response = self.client.patch(
            "/api/games/gears-of-war",
            data=json.dumps({"changes": {"status": "supported"}, "notes": "Verified"}),
            content_type="application/json",
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["changedFields"], ["status"])
        self.assertEqual(data["game"]["status"], "supported")

    def test_patch_rejects_invalid_status(self):
        self.client.force_login(self.admin)
        response = self.client.patch(
            "/api/games/gears-of-war",
            data=json.dumps({"changes": {"status": "broken"}}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)

    def test_detail_is_public_and_includes_history(self):
        admin_edit_game(game=self.game, admin=self.admin, changes={"publisher": "MGS"})

        response = self.client.get("/api/games/gears-of-war")

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["publisher"], "MGS")
        self.assertEqual(data["activationType"], "Legacy (5x5)")
        self.assertEqual(len(data["updateHistory"]), 1)
        self.assertEqual(data["updateHistory"][0]["updateType"], "adminEdit")
