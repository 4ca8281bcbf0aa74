"""Filesystem-backed object store for meal photos.

Objects live under `<storage_dir>/<bucket>/<path>` and are served read-only
by the app at `<public_base_url>/storage/v1/object/public/<bucket>/<path>`,
so every stored object has a durable public URL.
"""

from __future__ import annotations

import asyncio
import logging
import random
import string
import time
from pathlib import Path
from typing import Optional

import aiofiles

from models.post_record import StoredImage
from services.errors import StorageError

LOGGER = logging.getLogger(__name__)

PUBLIC_PREFIX = "/storage/v1/object/public"
_BASE36 = string.digits + string.ascii_lowercase


def generate_unique_filename(extension: str = "jpg", *, now_ms: Optional[int] = None) -> str:
    """Return `food_<unixMillis>_<6 base36 chars>.<extension>`."""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    token = "".join(random.choices(_BASE36, k=6))
    return f"food_{timestamp}_{token}.{extension}"


class ObjectStore:
    """Store binary objects in a bucket directory and expose public URLs.

    Args:
        root: Directory holding one sub-directory per bucket.
        bucket: Bucket name.
        public_base_url: Base URL the app is reachable at.
    """

    def __init__(self, root: Path | str, bucket: str, public_base_url: str) -> None:
        if not bucket or "/" in bucket:
            raise ValueError(f"Invalid bucket name: {bucket!r}")
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.bucket_dir = Path(root).expanduser().resolve() / bucket
        self.bucket_dir.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self.bucket_dir / path.lstrip("/")).resolve()
        if target == self.bucket_dir or self.bucket_dir not in target.parents:
            raise StorageError(f"Invalid object path: {path!r}")
        return target

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}{PUBLIC_PREFIX}/{self.bucket}/{path.lstrip('/')}"

    async def upload(self, path: str, data: bytes, content_type: str = "image/jpeg") -> StoredImage:
        """Write `data` at `path` and return its public location.

        Raises:
            StorageError: If the payload is empty, the path is invalid,
                the object already exists, or the write fails.
        """
        if not data:
            raise StorageError("Refusing to store an empty object.")
        target = self._resolve(path)
        if target.exists():
            raise StorageError("The resource already exists")

        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            # "xb" fails if another writer created the object in the meantime.
            async with aiofiles.open(target, "xb") as fh:
                await fh.write(data)
        except FileExistsError as exc:
            raise StorageError("The resource already exists") from exc
        except OSError as exc:
            raise StorageError(f"Failed to write object {path}: {exc}") from exc

        LOGGER.info("Stored %s (%d bytes, %s) in bucket %s", path, len(data), content_type, self.bucket)
        return StoredImage(url=self.public_url(path), path=path)

    async def remove(self, path: str) -> bool:
        """Delete an object. Returns True if it existed."""
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.unlink)
        except FileNotFoundError:
            return False
        return True
