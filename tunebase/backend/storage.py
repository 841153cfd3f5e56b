"""
Object storage bucket access.
"""

import logging
from typing import Optional
from urllib.parse import quote, unquote, urlparse

from .api_client import BackendClient

logger = logging.getLogger(__name__)


class StorageBucket:
    """Upload, address and remove objects in one storage bucket."""

    STORAGE_PATH = "/storage/v1"

    def __init__(self, client: BackendClient, bucket: str):
        self._client = client
        self.bucket = bucket

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """
        Upload an object.

        Args:
            path: Object path inside the bucket
            data: Object bytes
            content_type: MIME type stored with the object

        Returns:
            The stored object path

        Raises:
            BackendError: If the upload is rejected
        """
        await self._client.request(
            "POST",
            f"{self.STORAGE_PATH}/object/{self.bucket}/{quote(path)}",
            data=data,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )
        logger.debug(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")
        return path

    def public_url(self, path: str) -> str:
        """Public URL of an object."""
        return f"{self._client.url}{self.STORAGE_PATH}/object/public/{self.bucket}/{quote(path)}"

    async def remove(self, paths: list[str]) -> None:
        """
        Remove objects.

        Raises:
            BackendError: If the removal is rejected
        """
        if not paths:
            return
        await self._client.request(
            "DELETE",
            f"{self.STORAGE_PATH}/object/{self.bucket}",
            json_body={"prefixes": paths},
        )
        logger.debug(f"Removed {len(paths)} object(s) from {self.bucket}")

    def path_from_url(self, url: Optional[str]) -> Optional[str]:
        """
        Object path addressed by a public URL of this bucket.

        Returns None for empty, malformed or foreign URLs.
        """
        if not url:
            return None
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            logger.error(f"Invalid URL for storage object: {url}")
            return None
        marker = f"/{self.bucket}/"
        _, found, path = parsed.path.partition(marker)
        if not found or not path:
            return None
        return unquote(path)
