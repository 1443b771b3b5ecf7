"""Tests for in-app notifications."""

import pytest

from app.modules.notifications.service import NotificationService

API = "/api/v1/notifications"


def seed_notifications(fake, user, count, read=False):
    return [
        fake.seed("notifications", user_id=user.id, title=f"Title {i}", message="Hello", read=read,
                  created_at=f"2025-06-{i + 1:02d}T10:00:00+00:00")
        for i in range(count)
    ]


class TestListNotifications:
    def test_newest_first_with_unread_count(self, client, fake, alice, bob):
        seed_notifications(fake, alice, 3)
        fake.rows("notifications")[0]["read"] = True
        seed_notifications(fake, bob, 2)

        response = client.get(API, headers=alice.headers)

        assert response.status_code == 200
        body = response.json()
        assert [n["title"] for n in body["notifications"]] == ["Title 2", "Title 1", "Title 0"]
        assert body["unread_count"] == 2

    def test_limit(self, client, fake, alice):
        seed_notifications(fake, alice, 5)
        response = client.get(API, params={"limit": 2}, headers=alice.headers)
        assert len(response.json()["notifications"]) == 2

    @pytest.mark.parametrize("limit", [0, -1])
    def test_limit_must_be_positive(self, client, alice, limit):
        response = client.get(API, params={"limit": limit}, headers=alice.headers)
        assert response.status_code == 422


class TestMarkRead:
    def test_mark_one(self, client, fake, alice):
        notification = seed_notifications(fake, alice, 1)[0]

        response = client.post(f"{API}/{notification['id']}/read", headers=alice.headers)

        assert response.status_code == 200
        assert response.json()["read"] is True

    def test_cannot_mark_someone_elses(self, client, fake, alice, bob):
        notification = seed_notifications(fake, bob, 1)[0]

        response = client.post(f"{API}/{notification['id']}/read", headers=alice.headers)

        assert response.status_code == 404
        assert fake.rows("notifications")[0]["read"] is False

    def test_mark_all(self, client, fake, alice, bob):
        seed_notifications(fake, alice, 3)
        seed_notifications(fake, bob, 1)

        response = client.post(f"{API}/read-all", headers=alice.headers)

        assert response.json() == {"updated": 3}
        assert [n["read"] for n in fake.rows("notifications")] == [True, True, True, False]


class TestNotify:
    def test_creates_notification_for_any_user(self, fake, alice, bob):
        NotificationService(alice.db).notify(bob.id, "Hi", "Welcome", notification_type="welcome",
                                             action_url="/families")

        row = fake.rows("notifications")[0]
        assert row["user_id"] == bob.id
        assert row["type"] == "welcome"
        assert row["action_url"] == "/families"

    def test_failures_are_swallowed(self, fake, alice, bob):
        fake.fail_rpc("create_notification")
        assert NotificationService(alice.db).notify(bob.id, "Hi", "Welcome") is None
