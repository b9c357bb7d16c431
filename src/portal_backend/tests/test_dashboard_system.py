"""
Tests for the dashboard, activity log and system endpoints.
"""

from datetime import timedelta

from portal_backend.model.activity import ActivityLog
from portal_backend.model.notification import Notification
from portal_backend.model.seeder import DEFAULT_PERMISSIONS
from portal_backend.utils import utc_now


class TestHealth:

    def test_health_without_authentication(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "database": "ok",
            "cache": {"enabled": True, "backend": "memory"},
        }


class TestDashboard:

    def test_overview(self, client, regular_user, make_user, auth_headers):
        make_user("suspended@example.com", status="SUSPENDED")

        body = client.get("/dashboard/overview", headers=auth_headers(regular_user)).json()

        assert body["total_users"] == 2
        assert body["active_users"] == 1
        assert body["suspended_users"] == 1
        assert body["total_groups"] == 4
        assert body["total_permissions"] == len(DEFAULT_PERMISSIONS)

    def test_statistics_need_admin(self, client, regular_user, admin_user, auth_headers):
        assert client.get("/dashboard/users-by-status", headers=auth_headers(regular_user)).status_code == 403

        body = client.get("/dashboard/users-by-status", headers=auth_headers(admin_user)).json()
        assert body == {"ACTIVE": 2}

    def test_user_growth_is_zero_filled(self, client, admin_user, auth_headers):
        body = client.get("/dashboard/user-growth", params={"days": 7}, headers=auth_headers(admin_user)).json()

        assert len(body) == 7
        assert body[-1] == {"date": utc_now().date().isoformat(), "count": 1}
        assert sum(day["count"] for day in body) == 1

    def test_users_per_group(self, client, admin_user, regular_user, auth_headers):
        body = client.get("/dashboard/users-per-group", headers=auth_headers(admin_user)).json()

        counts = {row["codename"]: row["users"] for row in body}
        assert counts == {"admin": 1, "agent": 0, "super_admin": 0, "user": 1}

    def test_group_change_refreshes_overview_groups(self, client, superuser, regular_user, auth_headers):
        headers = auth_headers(superuser)
        before = client.get("/dashboard/users-per-group", headers=headers).json()
        assert {r["codename"]: r["users"] for r in before}["agent"] == 0

        client.put(f"/users/{regular_user.id}/groups", json={"groups": ["agent"]}, headers=headers)

        after = client.get("/dashboard/users-per-group", headers=headers).json()
        assert {r["codename"]: r["users"] for r in after}["agent"] == 1

    def test_users_by_country_and_language(self, client, admin_user, make_user, auth_headers):
        make_user("hans@example.com", country="AT", language="de")
        make_user("grete@example.com", country="AT", language="de")
        make_user("pierre@example.com", country="FR", language="fr")
        headers = auth_headers(admin_user)

        countries = client.get("/dashboard/users-by-country", headers=headers).json()
        languages = client.get("/dashboard/users-by-language", headers=headers).json()

        assert countries == {"AT": 2, "FR": 1, "unknown": 1}
        assert list(countries)[0] == "AT"
        assert languages == {"de": 2, "en": 1, "fr": 1}

    def test_recent_sign_ins(self, client, db, admin_user, regular_user, other_user, auth_headers):
        now = utc_now()
        regular_user.last_sign_in_at = now - timedelta(hours=2)
        other_user.last_sign_in_at = now - timedelta(minutes=5)
        db.commit()

        body = client.get("/dashboard/recent-sign-ins", params={"limit": 5}, headers=auth_headers(admin_user)).json()

        assert [row["email"] for row in body] == ["bob@example.com", "alice@example.com"]
        assert client.get(
            "/dashboard/recent-sign-ins", params={"limit": 101}, headers=auth_headers(admin_user),
        ).status_code == 422

    def test_role_statistics(self, client, admin_user, regular_user, other_user, auth_headers):
        body = client.get("/dashboard/role-statistics", headers=auth_headers(admin_user)).json()

        assert body["User"] == 2
        assert body["Sub Admin"] == 1
        assert body["Agent"] == 0

    def test_notification_statistics(self, client, db, admin_user, regular_user, auth_headers):
        db.add_all([
            Notification(user_id=regular_user.id, title="a", message="a", notification_type="info"),
            Notification(user_id=regular_user.id, title="b", message="b", notification_type="warning", priority="high"),
            Notification(
                user_id=regular_user.id, title="c", message="c", read_at=utc_now(),
                created_at=utc_now() - timedelta(days=20),
            ),
        ])
        db.commit()

        body = client.get("/dashboard/notifications-stats", headers=auth_headers(admin_user)).json()

        assert body["total"] == 3
        assert body["unread"] == 2
        assert body["read"] == 1
        assert body["by_type"] == {"info": 2, "warning": 1}
        assert body["by_priority"] == {"normal": 2, "high": 1}
        assert body["this_week"] == 2
        assert body["this_month"] == 3

    def test_activity_statistics(self, client, db, admin_user, auth_headers):
        db.add_all([
            ActivityLog(level="INFO", message="ok", action="login", module="auth"),
            ActivityLog(level="ERROR", message="boom", action="upload", module="media"),
            ActivityLog(
                level="INFO", message="old", action="login", module="auth",
                created_at=utc_now() - timedelta(days=40),
            ),
        ])
        db.commit()

        body = client.get("/dashboard/activity-stats", headers=auth_headers(admin_user)).json()

        assert body["total"] == 3
        assert body["errors"] == 1
        assert body["by_action"] == {"login": 2, "upload": 1}
        assert body["by_module"] == {"auth": 2, "media": 1}
        assert body["today"] == 2
        assert body["this_month"] == 2

    def test_extra_statistics_need_permission(self, client, regular_user, auth_headers):
        for path in ("users-by-country", "role-statistics", "notifications-stats", "activity-stats"):
            assert client.get(f"/dashboard/{path}", headers=auth_headers(regular_user)).status_code == 403


class TestActivityLogs:

    def test_login_is_listed(self, client, admin_user, regular_user, auth_headers):
        client.post("/auth/login", json={"login": "alice@example.com", "password": "password123"})

        response = client.get("/activity-logs", params={"action": "login"}, headers=auth_headers(admin_user))

        assert response.status_code == 200
        logs = response.json()["logs"]
        assert [entry["user_id"] for entry in logs] == [regular_user.id]
        assert response.headers["X-Total-Count"] == "1"

    def test_own_activity_only(self, client, db, regular_user, other_user, auth_headers):
        db.add(ActivityLog(message="mine", user_id=regular_user.id, action="test"))
        db.add(ActivityLog(message="theirs", user_id=other_user.id, action="test"))
        db.commit()

        # a user_id filter cannot widen the scope
        body = client.get(
            "/activity-logs/me", params={"user_id": other_user.id}, headers=auth_headers(regular_user),
        ).json()

        assert [entry["message"] for entry in body["logs"]] == ["mine"]

    def test_regular_user_cannot_list_all(self, client, regular_user, auth_headers):
        assert client.get("/activity-logs", headers=auth_headers(regular_user)).status_code == 403

    def test_statistics(self, client, db, admin_user, auth_headers):
        db.add(ActivityLog(message="a", level="INFO", module="auth", action="login"))
        db.add(ActivityLog(message="b", level="WARNING", module="auth", action="login_failed"))
        db.commit()

        body = client.get("/activity-logs/statistics", headers=auth_headers(admin_user)).json()

        assert body["total"] == 2
        assert body["by_level"] == {"INFO": 1, "WARNING": 1}
        assert body["by_module"] == {"auth": 2}

    def test_cleanup(self, client, db, superuser, auth_headers):
        db.add(ActivityLog(message="old", created_at=utc_now() - timedelta(days=120)))
        db.add(ActivityLog(message="recent"))
        db.commit()

        response = client.delete("/activity-logs/cleanup", params={"days": 90}, headers=auth_headers(superuser))

        assert response.json() == {"deleted": 1, "older_than_days": 90}
        messages = {m for (m,) in db.query(ActivityLog.message).all()}
        assert "old" not in messages
        assert "recent" in messages

    def test_admin_cannot_cleanup(self, client, admin_user, auth_headers):
        assert client.delete("/activity-logs/cleanup", headers=auth_headers(admin_user)).status_code == 403


class TestCacheAdministration:

    def test_statistics(self, client, admin_user, auth_headers):
        body = client.get("/system/cache/statistics", headers=auth_headers(admin_user)).json()

        assert body["enabled"] is True
        assert body["backend"] == "memory"

    def test_inspect_keys(self, client, cache, admin_user, auth_headers):
        headers = auth_headers(admin_user)
        client.get("/users", headers=headers)

        listed = client.get("/system/cache/keys", params={"pattern": "users:*"}, headers=headers).json()
        assert listed["total"] == 1

        key = listed["keys"][0]
        value = client.get(f"/system/cache/keys/{key}", headers=headers).json()
        assert value["value"]["total"] == 1

        assert client.get("/system/cache/keys/no:such:key", headers=headers).status_code == 404

    def test_admin_cannot_clear(self, client, admin_user, auth_headers):
        assert client.delete("/system/cache", headers=auth_headers(admin_user)).status_code == 403

    def test_delete_by_pattern(self, client, cache, superuser, auth_headers):
        headers = auth_headers(superuser)
        client.get("/users", headers=headers)
        client.get("/groups", headers=headers)

        response = client.delete("/system/cache/pattern", params={"pattern": "users:*"}, headers=headers)

        assert response.json()["deleted"] == 1
        remaining = client.get("/system/cache/keys", headers=headers).json()["keys"]
        assert not any(k.startswith("users:") for k in remaining)
        assert "groups:all" in remaining

    def test_match_all_pattern_is_rejected(self, client, superuser, auth_headers):
        response = client.delete("/system/cache/pattern", params={"pattern": "**"}, headers=auth_headers(superuser))
        assert response.status_code == 400

    def test_clear(self, client, cache, superuser, auth_headers):
        headers = auth_headers(superuser)
        client.get("/groups", headers=headers)

        assert client.delete("/system/cache", headers=headers).json() == {"cleared": True}

        # the request below repopulates permission keys only
        remaining = client.get("/system/cache/keys", params={"pattern": "groups:*"}, headers=headers).json()
        assert remaining["total"] == 0
