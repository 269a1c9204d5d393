"""
Fetch-and-persist for generated images.

Image URLs returned by the image-generation service expire after a short
time, so they are downloaded immediately and served from the local images
directory under ``settings.IMAGES_PUBLIC_PREFIX``.
"""
from __future__ import annotations

import logging
import os
import re
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from medinews.config import settings
from medinews.services.errors import ImagePersistError

logger = logging.getLogger(__name__)


class ImageStorage:
    """Downloads remote images into a local directory and maps them to public URLs."""

    ALLOWED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")
    DEFAULT_EXTENSION = "jpg"

    def __init__(
        self,
        images_dir: Optional[str] = None,
        public_prefix: Optional[str] = None,
        max_bytes: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.images_dir = Path(images_dir or settings.IMAGES_DIR)
        self.public_prefix = (public_prefix or settings.IMAGES_PUBLIC_PREFIX).rstrip("/")
        self.max_bytes = max_bytes or settings.IMAGE_MAX_BYTES
        self.timeout = httpx.Timeout(timeout or settings.IMAGE_DOWNLOAD_TIMEOUT, connect=10.0)
        self._transport = transport

    async def fetch_and_store(self, source_url: str, id_hint: str) -> str:
        """
        Download *source_url* and return the durable public URL.

        Raises ImagePersistError on an invalid URL, non-200 status, non-image
        content type, oversize body, transport error or write failure.
        """
        if not self._is_valid_url(source_url):
            raise ImagePersistError("Invalid image URL provided")

        filename = self._make_filename(id_hint, source_url)
        target = self.images_dir / filename

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                async with client.stream("GET", source_url) as resp:
                    if resp.status_code != 200:
                        raise ImagePersistError(f"HTTP {resp.status_code} while downloading image")

                    content_type = resp.headers.get("content-type", "")
                    if not content_type.startswith("image/"):
                        raise ImagePersistError(f"Invalid content type: {content_type or 'missing'}")

                    declared = int(resp.headers.get("content-length") or 0)
                    if declared > self.max_bytes:
                        raise ImagePersistError(
                            f"File too large: {declared} bytes (max: {self.max_bytes})"
                        )

                    body = bytearray()
                    async for part in resp.aiter_bytes():
                        body.extend(part)
                        if len(body) > self.max_bytes:
                            raise ImagePersistError("File size limit exceeded during download")
        except httpx.TimeoutException as exc:
            raise ImagePersistError("Image download timed out") from exc
        except httpx.HTTPError as exc:
            raise ImagePersistError(f"Image download failed: {exc}") from exc

        if not body:
            raise ImagePersistError("Downloaded image is empty")

        try:
            self.images_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(bytes(body))
        except OSError as exc:
            raise ImagePersistError(f"Failed to write image file: {exc}") from exc

        public_url = f"{self.public_prefix}/{filename}"
        logger.info("✓ Image stored: %s (%d bytes)", public_url, len(body))
        return public_url

    def exists(self, public_url: str) -> bool:
        path = self._local_path(public_url)
        return path is not None and path.exists()

    def delete(self, public_url: str) -> bool:
        """Remove a locally stored image.  Remote URLs are ignored."""
        path = self._local_path(public_url)
        if path is None or not path.exists():
            return False
        try:
            os.remove(path)
        except OSError as exc:
            logger.warning("Could not remove image %r: %s", str(path), exc)
            return False
        logger.info("Deleted image: %s", path.name)
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _local_path(self, public_url: str) -> Optional[Path]:
        if not public_url or not public_url.startswith(self.public_prefix + "/"):
            return None
        return self.images_dir / os.path.basename(public_url)

    @staticmethod
    def _is_valid_url(url: str) -> bool:
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)

    def _make_filename(self, id_hint: str, source_url: str) -> str:
        safe_hint = re.sub(r"[^A-Za-z0-9_-]", "_", id_hint or "image")[:64]
        return f"{safe_hint}_{int(time.time() * 1000)}.{self._extension(source_url)}"

    def _extension(self, url: str) -> str:
        ext = os.path.splitext(urlparse(url).path)[1].lower()
        if ext in self.ALLOWED_EXTENSIONS:
            return ext[1:]
        return self.DEFAULT_EXTENSION
