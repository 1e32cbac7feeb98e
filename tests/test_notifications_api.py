"""
Notification inbox API — list, unread count, mark read, delete, dispatch.
"""

from app.models.notification import Notification

BASE = "/api/v1/notifications"


def _inbox(client, headers, query=""):
    res = client.get(f"{BASE}{query}", headers=headers)
    assert res.status_code == 200
    return res.get_json()["data"]


class TestInbox:
    def test_owner_receives_submission(self, client, champion, owner, submit, auth_headers):
        record = submit(champion)
        data = _inbox(client, auth_headers(owner))

        assert data["total"] == 1
        assert data["unread_count"] == 1
        item = data["items"][0]
        assert item["message"] == "New Risk Assessment submitted by Carla Champion."
        assert item["forRole"] == "owner"
        assert item["recordId"] == record.id
        assert item["sender"]["id"] == champion.id
        assert item["isRead"] is False

    def test_sender_inbox_stays_empty(self, client, champion, owner, submit, auth_headers):
        submit(champion)
        assert _inbox(client, auth_headers(champion))["total"] == 0

    def test_newest_first_and_paging(self, client, champion, owner, submit, auth_headers):
        for _ in range(3):
            submit(champion)
        ids = [n.id for n in Notification.query.order_by(Notification.id).all()]

        data = _inbox(client, auth_headers(owner), "?limit=2")
        assert [n["id"] for n in data["items"]] == [ids[2], ids[1]]
        assert data["total"] == 3

        data = _inbox(client, auth_headers(owner), "?limit=2&offset=2")
        assert [n["id"] for n in data["items"]] == [ids[0]]

    def test_unread_only(self, client, champion, owner, submit, auth_headers):
        submit(champion)
        submit(champion)
        first = Notification.query.order_by(Notification.id).first()
        client.post(f"{BASE}/{first.id}/read", headers=auth_headers(owner))

        data = _inbox(client, auth_headers(owner), "?unread_only=true")
        assert data["total"] == 1
        assert data["unread_count"] == 1


class TestActions:
    def test_mark_read(self, client, champion, owner, submit, auth_headers):
        submit(champion)
        notif = Notification.query.one()
        res = client.post(f"{BASE}/{notif.id}/read", headers=auth_headers(owner))
        assert res.status_code == 200
        assert res.get_json()["data"]["isRead"] is True

        res = client.get(f"{BASE}/unread-count", headers=auth_headers(owner))
        assert res.get_json()["data"]["unread_count"] == 0

    def test_mark_all_read(self, client, champion, owner, submit, auth_headers):
        submit(champion)
        submit(champion)
        res = client.post(f"{BASE}/read-all", headers=auth_headers(owner))
        assert res.get_json()["data"]["marked_read"] == 2
        assert _inbox(client, auth_headers(owner))["unread_count"] == 0

    def test_delete(self, client, champion, owner, submit, auth_headers):
        submit(champion)
        notif_id = Notification.query.one().id
        res = client.delete(f"{BASE}/{notif_id}", headers=auth_headers(owner))
        assert res.status_code == 200
        assert res.get_json()["data"]["id"] == notif_id
        assert client.delete(f"{BASE}/{notif_id}", headers=auth_headers(owner)).status_code == 404

    def test_someone_elses_notification_is_404(self, client, champion, owner, admin, submit, auth_headers):
        submit(champion)
        owners = Notification.query.filter_by(recipient_id=owner.id).one()
        assert client.post(f"{BASE}/{owners.id}/read", headers=auth_headers(admin)).status_code == 404
        assert client.delete(f"{BASE}/{owners.id}", headers=auth_headers(admin)).status_code == 404


class TestDispatch:
    def test_super_admin_only(self, client, owner, auth_headers):
        assert client.post(f"{BASE}/dispatch", headers=auth_headers(owner)).status_code == 403

    def test_nothing_pending(self, client, super_admin, auth_headers):
        res = client.post(f"{BASE}/dispatch?include_failed=1", headers=auth_headers(super_admin))
        assert res.status_code == 200
        assert res.get_json()["data"] == {"processed": 0, "done": 0, "failed": 0}
