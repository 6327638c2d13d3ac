"""JPEG re-encoding and thumbnails for uploads and archive copies."""

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

JPEG_CONTENT_TYPE = "image/jpeg"
THUMBNAIL_SIZE = (400, 300)
THUMBNAIL_QUALITY = 75


@dataclass(frozen=True)
class CompressedImage:
    """Result of a compression pass."""

    data: bytes
    content_type: str
    compressed: bool


def compress_image(
    data: bytes, content_type: str, quality: float | None
) -> CompressedImage:
    """Re-encode image bytes as progressive JPEG at `quality` (0-1].

    Non-images and payloads that would grow are returned unchanged.
    """
    if quality is None or not content_type.startswith("image/"):
        return CompressedImage(data=data, content_type=content_type, compressed=False)
    try:
        with Image.open(io.BytesIO(data)) as image:
            image = ImageOps.exif_transpose(image)
            if image.mode not in {"RGB", "L"}:
                image = image.convert("RGB")
            buffer = io.BytesIO()
            image.save(
                buffer,
                format="JPEG",
                quality=round(quality * 100),
                progressive=True,
                optimize=True,
            )
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("Skipping compression", extra={"error": str(exc)})
        return CompressedImage(data=data, content_type=content_type, compressed=False)
    encoded = buffer.getvalue()
    if len(encoded) >= len(data):
        return CompressedImage(data=data, content_type=content_type, compressed=False)
    return CompressedImage(data=encoded, content_type=JPEG_CONTENT_TYPE, compressed=True)


def create_thumbnail(data: bytes, content_type: str) -> bytes | None:
    """Center-cropped JPEG preview, or None when the bytes are not an image."""
    if not content_type.startswith("image/"):
        return None
    try:
        with Image.open(io.BytesIO(data)) as image:
            image = ImageOps.exif_transpose(image)
            if image.mode not in {"RGB", "L"}:
                image = image.convert("RGB")
            thumbnail = ImageOps.fit(image, THUMBNAIL_SIZE, centering=(0.5, 0.5))
            buffer = io.BytesIO()
            thumbnail.save(buffer, format="JPEG", quality=THUMBNAIL_QUALITY)
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("Skipping thumbnail", extra={"error": str(exc)})
        return None
    return buffer.getvalue()
