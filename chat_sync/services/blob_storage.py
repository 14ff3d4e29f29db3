"""
Blob storage collaborator.

Uploads image and audio bytes under a random name and returns a stable,
retrievable URL. The engine treats an upload as a single awaitable with one
terminal outcome: a URL or UploadError.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp

from chat_sync.config import settings
from chat_sync.core import metrics
from chat_sync.core.exceptions import UploadError
from chat_sync.core.logging_config import get_logger

logger = get_logger(__name__)

IMAGE_FOLDER = "chatImages"
AUDIO_FOLDER = "chatAudios"


class BlobStorage(ABC):
    """Opaque async blob upload."""

    @abstractmethod
    async def upload(self, data: bytes, *, folder: str, content_type: str) -> str:
        """
        Store data under folder/<random name>.

        Returns:
            Retrievable URL of the stored object

        Raises:
            UploadError: The object was not stored
        """

    async def start(self) -> None:
        """Acquire network resources."""

    async def close(self) -> None:
        """Release network resources."""


class HttpBlobStorage(BlobStorage):
    """
    Uploads with HTTP PUT to {base_url}/{folder}/{uuid}.

    The service may answer with JSON {"url": ...}; otherwise the object URL
    itself is returned.

    Usage:
        storage = HttpBlobStorage()
        await storage.start()
        url = await storage.upload(data, folder="chatImages", content_type="image/png")
        await storage.close()
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.STORAGE_URL).rstrip('/')
        self.timeout = timeout or settings.STORAGE_TIMEOUT
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """
        Create the aiohttp session.

        Must run inside the event loop that will perform the uploads.
        """
        if self._session is not None and not self._session.closed:
            logger.warning("blob_storage_already_started")
            return

        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            raise_for_status=False,
        )
        logger.info("blob_storage_started", base_url=self.base_url)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
            logger.info("blob_storage_closed")
        self._session = None

    async def upload(self, data: bytes, *, folder: str, content_type: str) -> str:
        if self._session is None or self._session.closed:
            await self.start()

        kind = "audio" if folder == AUDIO_FOLDER else "image"
        object_url = f"{self.base_url}/{folder}/{uuid.uuid4()}"

        try:
            async with self._session.put(
                object_url,
                data=data,
                headers={"Content-Type": content_type},
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.error(
                        "blob_upload_rejected",
                        url=object_url,
                        status=response.status,
                        response=body[:200],
                    )
                    metrics.uploads_total.labels(kind=kind, status="error").inc()
                    raise UploadError(f"Storage rejected upload with status {response.status}")

                url = object_url
                if response.content_type == "application/json":
                    payload = await response.json()
                    if not isinstance(payload, dict):
                        raise ValueError(f"Unexpected upload response body: {type(payload).__name__}")
                    if isinstance(payload.get("url"), str) and payload["url"]:
                        url = payload["url"]

        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            # ValueError: the service declared JSON but sent something unusable
            logger.error("blob_upload_failed", url=object_url, error=str(e))
            metrics.uploads_total.labels(kind=kind, status="error").inc()
            raise UploadError(f"Upload failed: {e}") from e

        metrics.uploads_total.labels(kind=kind, status="success").inc()
        logger.info("blob_uploaded", folder=folder, size=len(data))
        return url
