"""Tests for the role directory and the identity/storage adapters."""

import json

import httpx
import pytest

from family_portal.services import (
    AdminDirectory,
    DatabaseIdentityProvider,
    DirectoryError,
    IdentityProvider,
    IdentityUser,
    StorageError,
    SupabaseIdentityProvider,
    SupabaseStorage,
    UserNotFoundError,
)


class CountingProvider(IdentityProvider):
    """Wraps another provider and counts ``list_users`` calls."""

    def __init__(self, inner: IdentityProvider):
        self.inner = inner
        self.list_calls = 0

    async def get_user(self, user_id):
        return await self.inner.get_user(user_id)

    async def list_users(self):
        self.list_calls += 1
        return await self.inner.list_users()

    async def update_user_metadata(self, user_id, partial):
        return await self.inner.update_user_metadata(user_id, partial)


class BrokenProvider(IdentityProvider):
    async def get_user(self, user_id):
        raise ConnectionError("socket closed")

    async def list_users(self):
        raise ConnectionError("socket closed")

    async def update_user_metadata(self, user_id, partial):
        raise ConnectionError("socket closed")


# =============================================================================
# TEST: ROLE CHECKS
# =============================================================================


class TestRoles:

    async def test_is_admin_requires_boolean_true(self, services):
        directory = services.directory

        assert await directory.is_admin("admin1") is True
        assert await directory.is_admin("pretender") is False
        assert await directory.is_admin("member") is False
        assert await directory.is_admin("nobody") is False
        assert await directory.is_admin(None) is False

    async def test_get_role(self, services):
        directory = services.directory

        assert await directory.get_role("admin1") == "admin"
        assert await directory.get_role("publisher") == "publisher"
        assert await directory.get_role("member") == "user"
        assert await directory.can_review("publisher") is True
        assert await directory.can_review("member") is False

    async def test_list_admin_ids(self, services):
        assert await services.directory.list_admin_ids() == {"admin1", "admin2"}

    async def test_set_role_preserves_other_metadata(self, services):
        await services.directory.set_role("member", is_publisher=True)

        user = await services.identity.get_user("member")
        assert user.metadata == {"full_name": "Mark Doe", "theme": "dark", "is_publisher": True}
        assert await services.directory.get_role("member") == "publisher"

    async def test_set_role_is_partial(self, services):
        await services.directory.set_role("admin1", is_publisher=True)

        user = await services.identity.get_user("admin1")
        assert user.metadata["is_admin"] is True
        assert user.metadata["is_publisher"] is True

    async def test_set_role_unknown_user(self, services):
        with pytest.raises(UserNotFoundError):
            await services.directory.set_role("ghost", is_admin=True)

    async def test_provider_errors_become_directory_errors(self, clock):
        directory = AdminDirectory(BrokenProvider(), clock=clock)

        with pytest.raises(DirectoryError):
            await directory.is_admin("admin1")
        with pytest.raises(DirectoryError):
            await directory.list_admin_ids()


# =============================================================================
# TEST: CACHE
# =============================================================================


class TestAdminCache:

    async def test_cached_within_ttl(self, session_factory, users, clock):
        provider = CountingProvider(DatabaseIdentityProvider(session_factory))
        directory = AdminDirectory(provider, cache_ttl_seconds=5, clock=clock)

        await directory.list_admin_ids()
        await directory.list_admin_ids()
        assert provider.list_calls == 1

        clock.advance(10)
        await directory.list_admin_ids()
        assert provider.list_calls == 2

    async def test_set_role_invalidates_cache(self, session_factory, users, clock):
        provider = CountingProvider(DatabaseIdentityProvider(session_factory))
        directory = AdminDirectory(provider, cache_ttl_seconds=60, clock=clock)

        assert await directory.list_admin_ids() == {"admin1", "admin2"}
        await directory.set_role("member", is_admin=True)

        assert await directory.list_admin_ids() == {"admin1", "admin2", "member"}
        assert provider.list_calls == 2

    async def test_returned_set_is_a_copy(self, session_factory, users, clock):
        directory = AdminDirectory(DatabaseIdentityProvider(session_factory), clock=clock)

        admins = await directory.list_admin_ids()
        admins.add("intruder")

        assert "intruder" not in await directory.list_admin_ids()


# =============================================================================
# TEST: SUPABASE ADAPTERS
# =============================================================================


def gotrue_handler(users: dict[str, dict], requests: list[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path == "/auth/v1/admin/users" and request.method == "GET":
            return httpx.Response(200, json={"users": list(users.values())})
        user_id = path.rsplit("/", 1)[-1]
        if user_id not in users:
            return httpx.Response(404, json={"msg": "User not found"})
        if request.method == "GET":
            return httpx.Response(200, json=users[user_id])
        if request.method == "PUT":
            users[user_id]["user_metadata"] = json.loads(request.content)["user_metadata"]
            return httpx.Response(200, json=users[user_id])
        return httpx.Response(405)

    return handler


class TestSupabaseIdentityProvider:

    @pytest.fixture
    def gotrue(self):
        users = {
            "u1": {"id": "u1", "email": "a@doe.family", "user_metadata": {"is_admin": True}},
            "u2": {"id": "u2", "email": "b@doe.family", "user_metadata": {"nickname": "Bee"}},
        }
        requests: list[httpx.Request] = []
        client = httpx.AsyncClient(transport=httpx.MockTransport(gotrue_handler(users, requests)))
        provider = SupabaseIdentityProvider(
            "https://project.supabase.co/", "service-key", http_client=client
        )
        return provider, users, requests

    async def test_list_users(self, gotrue):
        provider, _, requests = gotrue

        users = await provider.list_users()

        assert {u.id for u in users} == {"u1", "u2"}
        assert requests[0].headers["apikey"] == "service-key"
        assert requests[0].headers["authorization"] == "Bearer service-key"

    async def test_get_missing_user(self, gotrue):
        provider, _, _ = gotrue

        assert await provider.get_user("u9") is None

    async def test_update_merges_metadata(self, gotrue):
        provider, users, _ = gotrue

        updated = await provider.update_user_metadata("u2", {"is_publisher": True})

        assert updated == IdentityUser(
            id="u2", email="b@doe.family", metadata={"nickname": "Bee", "is_publisher": True}
        )
        assert users["u2"]["user_metadata"] == {"nickname": "Bee", "is_publisher": True}

    async def test_admin_directory_over_gotrue(self, gotrue, clock):
        provider, _, _ = gotrue
        directory = AdminDirectory(provider, clock=clock)

        assert await directory.list_admin_ids() == {"u1"}
        assert await directory.get_role("u2") == "user"

    async def test_server_error(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        )
        provider = SupabaseIdentityProvider("https://project.supabase.co", "key", http_client=client)

        with pytest.raises(DirectoryError):
            await provider.list_users()


class TestSupabaseStorage:

    async def test_upload_returns_public_url(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Key": "gallery/member/a.jpg"})

        storage = SupabaseStorage(
            "https://project.supabase.co",
            "service-key",
            "gallery",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        url = await storage.upload_file(b"jpeg-bytes", "member/a.jpg", "image/jpeg")

        assert url == "https://project.supabase.co/storage/v1/object/public/gallery/member/a.jpg"
        assert seen[0].url.path == "/storage/v1/object/gallery/member/a.jpg"
        assert seen[0].headers["content-type"] == "image/jpeg"
        assert seen[0].content == b"jpeg-bytes"

    async def test_upload_failure(self):
        storage = SupabaseStorage(
            "https://project.supabase.co",
            "service-key",
            "gallery",
            http_client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(413))
            ),
        )

        with pytest.raises(StorageError):
            await storage.upload_file(b"huge", "member/a.jpg", "image/jpeg")
