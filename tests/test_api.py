"""HTTP tests for the FastAPI routes."""

from uuid import uuid4

import pytest
from fastapi import WebSocketDisconnect, status
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from family_portal.core.config import get_settings
from family_portal.core.security import create_access_token
from family_portal.main import app

API = get_settings().api_prefix


def auth(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def socket_url(path: str, user_id: str | None = None) -> str:
    url = f"{API}{path}"
    if user_id is not None:
        url += f"?token={create_access_token(user_id)}"
    return url


@pytest.fixture
async def client(services):
    app.state.services = services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.state.services = None


@pytest.fixture
async def socket_client(services, db_engine):
    """Synchronous client for WebSocket routes, running the app on its own event loop."""
    # Connections opened on this loop must not be reused on the client's loop
    await db_engine.dispose()
    app.state.services = services
    with TestClient(app) as client:
        yield client
        client.portal.call(db_engine.dispose)
    app.state.services = None


@pytest.fixture
async def pending_jane(client, family_member_payload) -> dict:
    response = await client.post(
        f"{API}/requests/family_member", json=family_member_payload, headers=auth("member")
    )
    assert response.status_code == 201
    return response.json()


class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestRequestRoutes:

    async def test_submit(self, pending_jane):
        assert pending_jane["status"] == "pending"
        assert pending_jane["kind"] == "family_member"
        assert pending_jane["display_name"] == "Jane Doe"
        assert pending_jane["requested_by"] == "member"
        assert pending_jane["payload"]["fathers_first_name"] == "John"

    async def test_anonymous_submit(self, client):
        response = await client.post(
            f"{API}/requests/event", json={"name": "Picnic", "location": "Park"}
        )

        assert response.status_code == 201
        assert response.json()["requested_by"] is None

    async def test_invalid_payload(self, client):
        response = await client.post(f"{API}/requests/gallery", json={"caption": "No file"})

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_error"
        assert any(d["field"] == "url" for d in body["details"])

    async def test_unknown_kind(self, client):
        response = await client.post(f"{API}/requests/recipes", json={"name": "Jollof"})

        assert response.status_code == 422

    async def test_list_pending_requires_reviewer(self, client, pending_jane):
        forbidden = await client.get(f"{API}/requests/family_member", headers=auth("member"))
        allowed = await client.get(f"{API}/requests/family_member", headers=auth("publisher"))

        assert forbidden.status_code == 403
        assert allowed.status_code == 200
        assert [item["id"] for item in allowed.json()["items"]] == [pending_jane["id"]]

    async def test_list_mine(self, client, pending_jane):
        response = await client.get(f"{API}/requests/family_member/mine", headers=auth("member"))

        assert response.status_code == 200
        assert response.json()["total"] == 1

    async def test_approve_flow(self, client, pending_jane):
        url = f"{API}/requests/family_member/{pending_jane['id']}"

        denied = await client.post(f"{url}/approve", headers=auth("member"))
        assert denied.status_code == 403
        assert denied.json()["error"] == "unauthorized"

        approved = await client.post(
            f"{url}/approve", json={"note": "Welcome"}, headers=auth("admin1")
        )
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        assert approved.json()["admin_notes"] == "Welcome"

        again = await client.post(f"{url}/reject", headers=auth("admin2"))
        assert again.status_code == 409
        assert again.json()["error"] == "already_handled"

    async def test_approve_missing(self, client):
        response = await client.post(
            f"{API}/requests/event/{uuid4()}/approve", headers=auth("admin1")
        )

        assert response.status_code == 404

    async def test_bulk(self, client):
        ids = []
        for name in ("A", "B"):
            response = await client.post(f"{API}/requests/event", json={"name": name})
            ids.append(response.json()["id"])

        response = await client.post(
            f"{API}/requests/event/bulk",
            json={"ids": ids, "action": "reject"},
            headers=auth("admin1"),
        )

        assert response.status_code == 200
        assert sorted(response.json()["succeeded"]) == sorted(ids)
        assert response.json()["failed"] == {}

    async def test_gallery_upload(self, client, storage):
        response = await client.post(
            f"{API}/requests/gallery/upload",
            params={"filename": "reunion.jpg", "caption": "Reunion"},
            content=b"\xff\xd8\xff jpeg",
            headers={**auth("member"), "Content-Type": "image/jpeg"},
        )

        assert response.status_code == 201
        assert response.json()["payload"]["mime_type"] == "image/jpeg"
        assert response.json()["payload"]["url"].startswith("https://cdn.test/gallery/member/")


class TestNotificationRoutes:

    async def test_requires_auth(self, client):
        response = await client.get(f"{API}/notifications")

        assert response.status_code == 401

    async def test_decision_notification_lifecycle(self, client, pending_jane):
        await client.post(
            f"{API}/requests/family_member/{pending_jane['id']}/approve", headers=auth("admin1")
        )

        listing = await client.get(f"{API}/notifications", headers=auth("member"))
        assert listing.status_code == 200
        body = listing.json()
        assert body["unread"] == 1
        [notification] = body["items"]
        assert notification["type"] == "family_member_approved"
        assert notification["route"] == "/dashboard/family-tree"
        assert notification["action_text"] == "View Family Tree"

        for _ in range(2):
            marked = await client.post(
                f"{API}/notifications/{notification['id']}/read", headers=auth("member")
            )
            assert marked.status_code == 200

        count = await client.get(f"{API}/notifications/unread-count", headers=auth("member"))
        assert count.json() == {"unread": 0}

        read_all = await client.post(f"{API}/notifications/read-all", headers=auth("member"))
        assert read_all.json() == {"updated": 0}

    async def test_admin_routes_for_request_notification(self, client, pending_jane):
        listing = await client.get(f"{API}/notifications", headers=auth("admin1"))

        [notification] = listing.json()["items"]
        assert notification["type"] == "family_member_request"
        assert notification["route"] == "/admin/family-member-requests"

    async def test_mark_read_unknown_or_foreign(self, client, pending_jane):
        listing = await client.get(f"{API}/notifications", headers=auth("admin1"))
        notification_id = listing.json()["items"][0]["id"]

        foreign = await client.post(
            f"{API}/notifications/{notification_id}/read", headers=auth("admin2")
        )
        unknown = await client.post(f"{API}/notifications/{uuid4()}/read", headers=auth("admin1"))

        assert foreign.status_code == 404
        assert unknown.status_code == 404
        count = await client.get(f"{API}/notifications/unread-count", headers=auth("admin1"))
        assert count.json() == {"unread": 1}

    async def test_delete(self, client, pending_jane):
        listing = await client.get(f"{API}/notifications", headers=auth("admin1"))
        notification_id = listing.json()["items"][0]["id"]

        other = await client.delete(f"{API}/notifications/{notification_id}", headers=auth("admin2"))
        own = await client.delete(f"{API}/notifications/{notification_id}", headers=auth("admin1"))

        assert other.status_code == 404
        assert own.status_code == 204


class TestAdminRoutes:

    async def test_pending_counts(self, client, pending_jane):
        response = await client.get(f"{API}/admin/pending-counts", headers=auth("admin1"))

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["counts"]["family_member"] == 1
        assert body["counts"]["gallery"] == 0

    async def test_pending_counts_forbidden_for_members(self, client):
        response = await client.get(f"{API}/admin/pending-counts", headers=auth("member"))

        assert response.status_code == 403

    async def test_admins(self, client):
        response = await client.get(f"{API}/admin/admins", headers=auth("admin2"))

        assert response.json() == {"admin_ids": ["admin1", "admin2"]}

    async def test_set_role(self, client):
        response = await client.put(
            f"{API}/admin/users/member/role",
            json={"is_publisher": True},
            headers=auth("admin1"),
        )

        assert response.status_code == 200
        assert response.json() == {
            "user_id": "member",
            "role": "publisher",
            "is_admin": False,
            "is_publisher": True,
        }

    async def test_set_role_requires_admin(self, client):
        response = await client.put(
            f"{API}/admin/users/member/role",
            json={"is_admin": True},
            headers=auth("publisher"),
        )

        assert response.status_code == 403

    async def test_my_role(self, client):
        response = await client.get(f"{API}/me/role", headers=auth("pretender"))

        assert response.json()["role"] == "user"
        assert response.json()["is_admin"] is False


# =============================================================================
# TEST: WEBSOCKETS
# =============================================================================


class TestSockets:

    def test_admin_receives_new_requests(self, socket_client):
        with socket_client.websocket_connect(socket_url("/notifications/ws", "admin1")) as ws:
            picnic = socket_client.post(
                f"{API}/requests/event", json={"name": "Picnic"}, headers=auth("member")
            )
            party = socket_client.post(
                f"{API}/requests/event", json={"name": "Party"}, headers=auth("member")
            )
            first = ws.receive_json()
            second = ws.receive_json()

        # One record per submission, in submission order
        assert first["resource_id"] == picnic.json()["id"]
        assert second["resource_id"] == party.json()["id"]
        assert first["user_id"] == "admin1"
        assert first["type"] == "event_request"
        assert first["route"] == "/admin/event-requests"
        assert first["action_text"] == "Review Event"
        assert first["read"] is False

    def test_pending_counts_on_connect_and_after_change(self, socket_client):
        with socket_client.websocket_connect(
            socket_url("/admin/pending-counts/ws", "publisher")
        ) as ws:
            initial = ws.receive_json()
            socket_client.post(f"{API}/requests/event", json={"name": "Picnic"})
            updated = ws.receive_json()

        assert initial["ok"] is True
        assert initial["counts"]["event"] == 0
        assert updated["counts"]["event"] == 1
        assert updated["counts"]["gallery"] == 0

    @pytest.mark.parametrize("path", ["/notifications/ws", "/admin/pending-counts/ws"])
    def test_missing_token_is_rejected(self, socket_client, path):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with socket_client.websocket_connect(socket_url(path)):
                pass

        assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION

    @pytest.mark.parametrize("path", ["/notifications/ws", "/admin/pending-counts/ws"])
    def test_bad_token_is_rejected(self, socket_client, path):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with socket_client.websocket_connect(f"{API}{path}?token=not-a-jwt"):
                pass

        assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION

    def test_pending_counts_requires_reviewer(self, socket_client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with socket_client.websocket_connect(
                socket_url("/admin/pending-counts/ws", "member")
            ):
                pass

        assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION
