"""occupeye_etl.images

Download and transcode helpers for spot/hall photos.

Every photo is downsized to 30% of its original linear dimensions and
re-encoded as WebP at quality 85.
"""

from __future__ import annotations

import io
import logging

import requests
from PIL import Image, UnidentifiedImageError

log = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_SECONDS = 30
SCALE_FACTOR = 0.3
WEBP_QUALITY = 85
PHOTO_EXTENSION = "webp"
PHOTO_CONTENT_TYPE = "image/webp"

# Used for both sides when the decoder reports no size.
_FALLBACK_DIMENSION = 1000


class ImageDownloadError(Exception):
    """Raised when an image cannot be fetched (network, timeout, non-2xx)."""


class ImageTranscodeError(Exception):
    """Raised when image bytes cannot be decoded or re-encoded."""


def download_image(
    url: str,
    session: requests.Session | None = None,
    timeout: int = DOWNLOAD_TIMEOUT_SECONDS,
) -> bytes:
    """Fetch raw image bytes. Raises ImageDownloadError on any failure."""
    getter = session.get if session is not None else requests.get
    try:
        resp = getter(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise ImageDownloadError(f"Failed to download image from {url}: {exc}") from exc
    return resp.content


def scaled_size(width: int | None, height: int | None) -> tuple[int, int]:
    """30% of the original size, rounded, never below 1px."""
    w = width or _FALLBACK_DIMENSION
    h = height or _FALLBACK_DIMENSION
    return max(1, round(w * SCALE_FACTOR)), max(1, round(h * SCALE_FACTOR))


def optimize_image(content: bytes) -> bytes:
    """Downsize to 30% and re-encode as WebP."""
    try:
        with Image.open(io.BytesIO(content)) as image:
            new_size = scaled_size(image.width, image.height)
            if image.mode not in ("RGB", "RGBA"):
                has_alpha = "A" in image.getbands() or "transparency" in image.info
                image = image.convert("RGBA" if has_alpha else "RGB")
            resized = image.resize(new_size)
            out = io.BytesIO()
            resized.save(out, "WEBP", quality=WEBP_QUALITY)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageTranscodeError(f"Failed to optimize image: {exc}") from exc
    log.debug("optimized image to %sx%s (%d bytes)", new_size[0], new_size[1], out.tell())
    return out.getvalue()


def photo_storage_path(organization_id: str, entity_kind: str, entity_id: str, index: int) -> str:
    """organizations/{orgId}/photos/{spots|halls}/{entityId}/{index}.webp"""
    return (
        f"organizations/{organization_id}/photos/{entity_kind}/"
        f"{entity_id}/{index}.{PHOTO_EXTENSION}"
    )
