"""Validation and normalisation helpers for uploaded meal photos."""

import io
from typing import Tuple

from fastapi import HTTPException, UploadFile
from PIL import Image, UnidentifiedImageError

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
    "image/bmp",
    "application/octet-stream",
}


def ensure_jpeg(raw: bytes, *, background: Tuple[int, int, int] = (255, 255, 255), quality: int = 90) -> bytes:
    """Return JPEG bytes for `raw`, re-encoding other formats.

    JPEG input is returned unchanged. Images with an alpha channel are
    flattened against `background` before encoding.

    Raises:
        ValueError: If the bytes cannot be opened as an image.
    """
    if not raw:
        raise ValueError("Image bytes are required.")
    try:
        src = Image.open(io.BytesIO(raw))
        src.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("Decoded bytes are not a supported image format") from exc

    if src.format == "JPEG":
        return raw

    src = src.convert("RGBA")
    flattened = Image.new("RGB", src.size, background)
    flattened.paste(src, mask=src.split()[3])

    out_io = io.BytesIO()
    flattened.save(out_io, format="JPEG", quality=quality)
    return out_io.getvalue()


def validate_image_file(image_file: UploadFile) -> None:
    """Reject uploads whose declared content type is not an image."""
    if image_file.content_type:
        content_type = image_file.content_type.lower().split(";", 1)[0].strip()
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise HTTPException(status_code=415, detail=f"Unsupported image content type: {image_file.content_type}")


async def read_image_bytes(image_file: UploadFile) -> bytes:
    """Read validated image bytes, ensuring the upload is not empty."""
    validate_image_file(image_file)
    image_bytes = await image_file.read()
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Uploaded image is empty.")
    return image_bytes
