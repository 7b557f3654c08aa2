"""
Role/Admin Directory.

Roles are flags in identity metadata: a user is an admin iff
``metadata["is_admin"] is True`` and a publisher iff
``metadata["is_publisher"] is True``. Anything else (missing, "true", 1)
does not count.

The admin set is derived from the provider on every query, behind a short
TTL cache that ``set_role`` invalidates.
"""

import logging
from typing import Any, Literal

from ..core.clock import Clock, utcnow
from .errors import DirectoryError
from .identity import IdentityProvider, IdentityUser

logger = logging.getLogger(__name__)

Role = Literal["admin", "publisher", "user"]


def _flag(user: IdentityUser | None, key: str) -> bool:
    return user is not None and user.metadata.get(key) is True


class AdminDirectory:
    """Role lookups over an identity provider."""

    def __init__(
        self,
        provider: IdentityProvider,
        cache_ttl_seconds: float = 5.0,
        clock: Clock = utcnow,
    ):
        self.provider = provider
        self.cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._admin_ids: frozenset[str] | None = None
        self._cached_at = None

    # =========================================================================
    # ROLE CHECKS
    # =========================================================================

    async def _get_user(self, user_id: str | None) -> IdentityUser | None:
        if not user_id:
            return None
        try:
            return await self.provider.get_user(user_id)
        except DirectoryError:
            raise
        except Exception as e:
            raise DirectoryError(f"Identity lookup failed for {user_id}: {e}") from e

    async def is_admin(self, user_id: str | None) -> bool:
        return _flag(await self._get_user(user_id), "is_admin")

    async def is_publisher(self, user_id: str | None) -> bool:
        return _flag(await self._get_user(user_id), "is_publisher")

    async def get_role(self, user_id: str | None) -> Role:
        """Highest role held by the user: admin wins over publisher."""
        user = await self._get_user(user_id)
        if _flag(user, "is_admin"):
            return "admin"
        if _flag(user, "is_publisher"):
            return "publisher"
        return "user"

    async def can_review(self, user_id: str | None) -> bool:
        """Admins and publishers may approve or reject requests."""
        return await self.get_role(user_id) in ("admin", "publisher")

    # =========================================================================
    # ADMIN SET
    # =========================================================================

    def _cache_fresh(self) -> bool:
        if self._admin_ids is None or self._cached_at is None:
            return False
        age = (self._clock() - self._cached_at).total_seconds()
        return age < self.cache_ttl_seconds

    async def list_admin_ids(self) -> set[str]:
        """All users whose ``is_admin`` flag is exactly True."""
        if self._cache_fresh():
            return set(self._admin_ids)

        try:
            users = await self.provider.list_users()
        except DirectoryError:
            raise
        except Exception as e:
            raise DirectoryError(f"Failed to list users: {e}") from e

        admin_ids = frozenset(u.id for u in users if _flag(u, "is_admin"))
        self._admin_ids = admin_ids
        self._cached_at = self._clock()
        logger.debug(f"Admin directory refreshed: {len(admin_ids)} admin(s)")
        return set(admin_ids)

    def invalidate(self) -> None:
        self._admin_ids = None
        self._cached_at = None

    # =========================================================================
    # ROLE CHANGES
    # =========================================================================

    async def set_role(
        self,
        user_id: str,
        is_admin: bool | None = None,
        is_publisher: bool | None = None,
    ) -> IdentityUser:
        """
        Partially update role flags. Flags left as None are not touched and
        all other metadata keys are preserved.
        """
        partial: dict[str, Any] = {}
        if is_admin is not None:
            partial["is_admin"] = is_admin
        if is_publisher is not None:
            partial["is_publisher"] = is_publisher

        if not partial:
            user = await self._get_user(user_id)
            if user is None:
                # Let the provider report the missing user consistently
                return await self.provider.update_user_metadata(user_id, {})
            return user

        user = await self.provider.update_user_metadata(user_id, partial)
        self.invalidate()
        logger.info(f"Updated roles for {user_id}: {partial}")
        return user
