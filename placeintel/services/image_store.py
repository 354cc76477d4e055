"""
Local storage for re-hosted pin images.

Files are organized as ``pin_images/{cache_key}/{source}/{hash}.{ext}`` under
the media root and served from ``public_base_url``.
"""
import hashlib
import logging
import re
from pathlib import Path

from placeintel.config import settings

logger = logging.getLogger(__name__)

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

_UNSAFE_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]")


def extension_for(content_type: str) -> str:
    return CONTENT_TYPE_EXTENSIONS.get(content_type.split(";")[0].strip().lower(), "jpg")


def image_path(cache_key: str, source: str, source_url: str, content_type: str) -> str:
    """Deterministic relative path; the same source URL always lands on the same file."""
    digest = hashlib.md5(source_url.encode("utf-8")).hexdigest()[:8]
    key_segment = _UNSAFE_SEGMENT_RE.sub("_", cache_key)
    source_segment = _UNSAFE_SEGMENT_RE.sub("_", source)
    return f"pin_images/{key_segment}/{source_segment}/{digest}.{extension_for(content_type)}"


class ImageStore:
    """Writes image bytes to the media directory and returns public URLs."""

    def __init__(self, media_root: str = None, public_base_url: str = None):
        self.media_root = Path(media_root or settings.image_storage_dir)
        self.media_root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url or settings.image_public_base_url).rstrip("/")

    def public_url(self, relative_path: str) -> str:
        return f"{self.public_base_url}/{relative_path}"

    def save(self, cache_key: str, source: str, source_url: str, data: bytes, content_type: str) -> str:
        """
        Save one image.

        Args:
            cache_key: Pin cache key the image belongs to
            source: Image source label (website, social, ...)
            source_url: Where the bytes were downloaded from
            data: Image bytes
            content_type: Response content type

        Returns:
            Public URL of the stored file
        """
        relative = image_path(cache_key, source, source_url, content_type)
        file_path = self.media_root / relative
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "wb") as f:
            f.write(data)
        logger.debug(f"Stored {len(data)} bytes at {relative}")
        return self.public_url(relative)
