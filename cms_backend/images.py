"""
Image helpers: WebP compression and content-type lookup.
"""

from __future__ import annotations

import io
from pathlib import PurePosixPath

from PIL import Image, UnidentifiedImageError

DEFAULT_MAX_WIDTH = 800
DEFAULT_QUALITY = 80

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
}


def compress_image(
    data: bytes, max_width: int = DEFAULT_MAX_WIDTH, quality: int = DEFAULT_QUALITY
) -> bytes:
    """
    Shrink an image to at most ``max_width`` pixels wide (aspect ratio kept)
    and re-encode it as WebP. Raises ValueError for undecodable input.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Unsupported or corrupt image: {exc}") from exc

    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
    if image.width > max_width:
        height = max(1, round(image.height * max_width / image.width))
        image = image.resize((max_width, height), Image.LANCZOS)

    buffer = io.BytesIO()
    image.save(buffer, format="WEBP", quality=quality)
    return buffer.getvalue()


def content_type_for(filename: str) -> str:
    extension = PurePosixPath(filename).suffix.lstrip(".").lower()
    return CONTENT_TYPES.get(extension, "image/jpeg")


def safe_filename(filename: str | None) -> str:
    """Drop any directory components a client put into an upload name."""
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    return name or "upload"
