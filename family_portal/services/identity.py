"""Identity provider adapters.

The admin directory reads user metadata (``is_admin``, ``is_publisher``)
through one of these adapters:

- ``DatabaseIdentityProvider`` keeps users in the local ``users`` table
- ``SupabaseIdentityProvider`` talks to the GoTrue admin REST API

Both raise ``DirectoryError`` when the backing store cannot be queried.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import User
from .errors import DirectoryError, UserNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class IdentityUser:
    """Provider-neutral view of an identity."""
    id: str
    email: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class IdentityProvider(ABC):
    """Abstract base class for identity backends."""

    @abstractmethod
    async def get_user(self, user_id: str) -> IdentityUser | None:
        """Return the user, or None when it does not exist."""
        pass

    @abstractmethod
    async def list_users(self) -> list[IdentityUser]:
        pass

    @abstractmethod
    async def update_user_metadata(
        self, user_id: str, partial: dict[str, Any]
    ) -> IdentityUser:
        """Merge ``partial`` into the user's metadata, keeping other keys."""
        pass

    async def close(self) -> None:
        pass


# =============================================================================
# DATABASE BACKEND
# =============================================================================


class DatabaseIdentityProvider(IdentityProvider):
    """Users stored in the application database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _to_identity(user: User) -> IdentityUser:
        return IdentityUser(id=user.id, email=user.email, metadata=dict(user.user_metadata or {}))

    async def get_user(self, user_id: str) -> IdentityUser | None:
        try:
            async with self._session_factory() as session:
                user = await session.get(User, user_id)
                return self._to_identity(user) if user else None
        except SQLAlchemyError as e:
            raise DirectoryError(f"Failed to load user {user_id}: {e}") from e

    async def list_users(self) -> list[IdentityUser]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(User).order_by(User.id))
                return [self._to_identity(u) for u in result.scalars().all()]
        except SQLAlchemyError as e:
            raise DirectoryError(f"Failed to list users: {e}") from e

    async def update_user_metadata(
        self, user_id: str, partial: dict[str, Any]
    ) -> IdentityUser:
        try:
            async with self._session_factory() as session:
                user = await session.get(User, user_id)
                if user is None:
                    raise UserNotFoundError(f"User {user_id} not found")
                # JSON columns only track reassignment, not in-place mutation
                user.user_metadata = {**(user.user_metadata or {}), **partial}
                await session.commit()
                return self._to_identity(user)
        except SQLAlchemyError as e:
            raise DirectoryError(f"Failed to update metadata for {user_id}: {e}") from e


# =============================================================================
# SUPABASE (GoTrue) BACKEND
# =============================================================================


class SupabaseIdentityProvider(IdentityProvider):
    """Users managed by Supabase Auth, queried with the service-role key."""

    PAGE_SIZE = 1000

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
        }

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    @staticmethod
    def _to_identity(data: dict[str, Any]) -> IdentityUser:
        return IdentityUser(
            id=str(data["id"]),
            email=data.get("email"),
            metadata=dict(data.get("user_metadata") or {}),
        )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.http_client.request(
                method,
                f"{self.base_url}/auth/v1/admin{path}",
                headers=self._headers,
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise DirectoryError(f"Identity provider unreachable: {e}") from e

    def _check(self, response: httpx.Response, action: str) -> dict[str, Any]:
        if response.status_code not in (200, 201):
            logger.error(f"GoTrue admin API error during {action}: {response.status_code}")
            raise DirectoryError(f"Failed to {action}: HTTP {response.status_code}")
        return response.json()

    async def get_user(self, user_id: str) -> IdentityUser | None:
        response = await self._request("GET", f"/users/{user_id}")
        if response.status_code == 404:
            return None
        return self._to_identity(self._check(response, f"load user {user_id}"))

    async def list_users(self) -> list[IdentityUser]:
        users: list[IdentityUser] = []
        page = 1
        while True:
            response = await self._request(
                "GET", "/users", params={"page": page, "per_page": self.PAGE_SIZE}
            )
            batch = self._check(response, "list users").get("users", [])
            users.extend(self._to_identity(u) for u in batch)
            if len(batch) < self.PAGE_SIZE:
                return users
            page += 1

    async def update_user_metadata(
        self, user_id: str, partial: dict[str, Any]
    ) -> IdentityUser:
        current = await self.get_user(user_id)
        if current is None:
            raise UserNotFoundError(f"User {user_id} not found")
        merged = {**current.metadata, **partial}
        response = await self._request(
            "PUT", f"/users/{user_id}", json={"user_metadata": merged}
        )
        return self._to_identity(self._check(response, f"update user {user_id}"))
