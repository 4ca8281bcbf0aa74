from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import aiofiles


@dataclass(frozen=True)
class ImageAsset:
    """Opaque handle to a captured photo.

    Exactly one of `uri` or `data` is expected. `uri` may be a `data:` URI,
    a `file://` URI or a plain filesystem path.
    """

    uri: Optional[str] = None
    data: Optional[bytes] = None
    filename: Optional[str] = None

    async def read_bytes(self) -> bytes:
        """Load the raw image bytes behind this handle.

        Raises:
            ValueError: If the handle is empty or the data URI is malformed.
            OSError: If a file-backed handle cannot be read.
        """
        if self.data is not None:
            if not self.data:
                raise ValueError("Image buffer is empty.")
            return self.data

        if not self.uri:
            raise ValueError("Image asset has neither a URI nor data.")

        if self.uri.startswith("data:"):
            return _decode_data_uri(self.uri)

        path = Path(unquote(urlparse(self.uri).path)) if self.uri.startswith("file://") else Path(self.uri)
        async with aiofiles.open(path, "rb") as fh:
            content = await fh.read()
        if not content:
            raise ValueError(f"Image file is empty: {path}")
        return content


def _decode_data_uri(uri: str) -> bytes:
    header, sep, payload = uri.partition(",")
    if not sep:
        raise ValueError("Malformed data URI: missing ',' separator.")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except Exception as exc:
            raise ValueError("Malformed data URI: invalid base64 payload.") from exc
    return unquote(payload).encode("latin-1")
