"""
API tests for the notification inbox
"""

import uuid

from fastapi.testclient import TestClient


def notify(client, headers, user, title="Новая задача"):
    response = client.post(
        "/v1/notifications",
        json={
            "user_id": str(user.id),
            "type": "APPROVAL_REQUESTED",
            "title": title,
            "message": "Договор ожидает согласования",
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestNotifications:
    def test_inbox_is_newest_first(self, client: TestClient, auth_headers, test_user):
        notify(client, auth_headers, test_user, title="Первое")
        notify(client, auth_headers, test_user, title="Второе")

        response = client.get("/v1/notifications", headers=auth_headers)

        assert response.status_code == 200
        assert [n["title"] for n in response.json()] == ["Второе", "Первое"]

    def test_unknown_recipient(self, client: TestClient, auth_headers):
        response = client.post(
            "/v1/notifications",
            json={
                "user_id": str(uuid.uuid4()),
                "type": "ESCALATION",
                "title": "t",
                "message": "m",
            },
            headers=auth_headers,
        )
        assert response.status_code == 404

    def test_mark_read_and_unread(self, client: TestClient, auth_headers, test_user):
        notification = notify(client, auth_headers, test_user)

        read = client.put(
            f"/v1/notifications/{notification['id']}/read", headers=auth_headers
        )
        assert read.json()["is_read"] is True
        assert read.json()["read_at"] is not None

        unread = client.put(
            "/v1/notifications",
            json={"notification_id": notification["id"], "read": False},
            headers=auth_headers,
        )
        assert unread.json()["is_read"] is False

        only_unread = client.get(
            "/v1/notifications", params={"unread_only": True}, headers=auth_headers
        )
        assert len(only_unread.json()) == 1

    def test_read_all(self, client: TestClient, auth_headers, test_user):
        for _ in range(3):
            notify(client, auth_headers, test_user)

        response = client.post("/v1/notifications/read-all", headers=auth_headers)

        assert response.json()["updated"] == 3
        count = client.get("/v1/notifications/unread-count", headers=auth_headers).json()
        assert count == {"user_id": str(test_user.id), "unread": 0}

    def test_cannot_touch_foreign_notification(
        self, client: TestClient, auth_headers, token_headers, manager_user
    ):
        notification = notify(client, auth_headers, manager_user)

        response = client.put(
            f"/v1/notifications/{notification['id']}/read", headers=auth_headers
        )
        assert response.status_code == 403

        inbox = client.get("/v1/notifications", headers=token_headers(manager_user)).json()
        assert len(inbox) == 1
