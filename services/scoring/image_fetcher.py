"""Download an image over HTTP and base64-encode it for the model."""

from __future__ import annotations

import base64
import logging

import httpx

from services.errors import ImageFetchError

LOGGER = logging.getLogger(__name__)

# Multiple of 3 so that per-chunk encodings concatenate into valid base64.
CHUNK_SIZE = 3 * 0x2000


def encode_base64_chunked(data: bytes, chunk_size: int = CHUNK_SIZE) -> str:
    """Base64-encode `data` in fixed-size chunks."""
    if chunk_size <= 0 or chunk_size % 3:
        raise ValueError("chunk_size must be a positive multiple of 3")
    view = memoryview(data)
    parts = [
        base64.b64encode(view[offset:offset + chunk_size]).decode("ascii")
        for offset in range(0, len(view), chunk_size)
    ]
    return "".join(parts)


async def fetch_image_as_base64(client: httpx.AsyncClient, image_url: str) -> str:
    """Return the base64 encoding of the image at `image_url`.

    Raises:
        ImageFetchError: On a non-2xx response or a transport failure.
    """
    LOGGER.info("[IMAGE-FETCH] Fetching image from: %s", image_url)
    try:
        response = await client.get(image_url)
    except httpx.HTTPError as exc:
        LOGGER.error("[IMAGE-FETCH] Error fetching image: %s", exc)
        raise ImageFetchError(f"Failed to fetch image: {exc}") from exc

    if not response.is_success:
        LOGGER.error("[IMAGE-FETCH] Unexpected status %s for %s", response.status_code, image_url)
        raise ImageFetchError(f"Failed to fetch image: {response.status_code} {response.reason_phrase}")

    content = response.content
    LOGGER.info("[IMAGE-FETCH] Image downloaded, size: %d bytes", len(content))
    encoded = encode_base64_chunked(content)
    LOGGER.info("[IMAGE-FETCH] Image converted to base64, size: %d characters", len(encoded))
    return encoded
