"""Object storage for gallery uploads."""

import logging
from abc import ABC, abstractmethod

import httpx

from .errors import StorageError

logger = logging.getLogger(__name__)


class FileStorage(ABC):
    """Abstract base class for file storage backends."""

    @abstractmethod
    async def upload_file(self, data: bytes, path: str, content_type: str) -> str:
        """Store ``data`` under ``path`` and return a URL that resolves to it."""
        pass

    async def close(self) -> None:
        pass


class SupabaseStorage(FileStorage):
    """Supabase Storage bucket accessed through its REST API."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        bucket: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
        }

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def upload_file(self, data: bytes, path: str, content_type: str) -> str:
        if not data:
            raise StorageError("Refusing to upload an empty file")
        try:
            response = await self.http_client.post(
                f"{self.base_url}/storage/v1/object/{self.bucket}/{path}",
                headers={**self._headers, "Content-Type": content_type, "x-upsert": "false"},
                content=data,
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Storage unreachable: {e}") from e

        if response.status_code not in (200, 201):
            logger.error(f"Storage upload failed for {path}: {response.status_code}")
            raise StorageError(f"Upload failed: HTTP {response.status_code}")

        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")
        return self.public_url(path)
