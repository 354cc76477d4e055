"""
HTML metadata extraction for website and social previews.

Parses Open Graph / Twitter tags, JSON-LD blocks, ``<title>`` and the meta
description with BeautifulSoup, and applies the photo filter shared by every
image source.
"""

import json
import logging
import re
from typing import Any, Iterable, List, Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from placeintel.enrichment.url_safety import is_safe_url, resolve_url
from placeintel.models.places import PagePreview

logger = logging.getLogger(__name__)

MAX_PREVIEW_IMAGES = 3
IMG_SCAN_LIMIT = 40
DESCRIPTION_MAX_CHARS = 240

JUNK_TOKENS = ("favicon", "logo", "icon", "sprite", "badge", "placeholder")
JUNK_EXTENSIONS = (".svg", ".ico")
PHOTO_EXTENSION_RE = re.compile(r"\.(jpe?g|png|webp|avif)$", re.IGNORECASE)
PHOTO_PATH_HINTS = (
    "/wp-content/uploads/",
    "/uploads/",
    "/media/",
    "/images/",
    "/photos/",
    "wixstatic.com/media",
    "squarespace-cdn.com",
    "fbcdn.net",
    "cdninstagram.com",
    "format=webp",
    "commons.wikimedia.org/wiki/special:filepath/",
    "images.unsplash.com/",
)

IMAGE_META_KEYS = ("og:image", "og:image:url", "og:image:secure_url", "twitter:image", "twitter:image:src")

SOCIAL_SKIP_FRAGMENTS = ("sharer", "/share", "/plugins/", "intent/", "/dialog/", "oauth")
FACEBOOK_SKIP_PREFIXES = ("/share", "/groups", "/events", "/people", "/watch", "/login", "/dialog")
INSTAGRAM_SKIP_PREFIXES = ("/p/", "/reel/", "/reels/", "/explore", "/stories/", "/accounts/")

MARKETING_FLUFF = ("!!!", "best ", "cheap ", "sale", "discount", "click here", "book now", "order now")
BAD_TITLES = {"home", "welcome", "homepage", "index", "default", "untitled"}


def is_junk_image_url(url: Optional[str]) -> bool:
    """Logos, icons, vector/icon files and data URIs."""
    if not url:
        return True
    lowered = url.strip().lower()
    if lowered.startswith("data:"):
        return True
    path = urlsplit(lowered).path
    if path.endswith(JUNK_EXTENSIONS):
        return True
    return any(token in lowered for token in JUNK_TOKENS)


def is_photo_url(url: str) -> bool:
    """Photographic extension or a path that is known to serve uploads."""
    lowered = url.lower()
    path = urlsplit(lowered).path
    if PHOTO_EXTENSION_RE.search(path):
        return True
    return any(hint in lowered for hint in PHOTO_PATH_HINTS)


def is_acceptable_image_url(url: Optional[str]) -> bool:
    return bool(url) and not is_junk_image_url(url) and is_photo_url(url)


def filter_image_urls(urls: Iterable[str], limit: int = None) -> List[str]:
    """Drop junk and duplicates, keep order."""
    seen = set()
    result = []
    for url in urls:
        if not url or url in seen:
            continue
        seen.add(url)
        if is_acceptable_image_url(url):
            result.append(url)
        if limit is not None and len(result) >= limit:
            break
    return result


def _clean_text(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    text = re.sub(r"\s+", " ", str(value)).strip()
    return text or None


def clean_site_title(raw: Optional[str]) -> Optional[str]:
    """First segment of ``Page | Site`` / ``Page - Site`` style titles."""
    text = _clean_text(raw)
    if not text:
        return None
    for separator in ("|", " - ", " – "):
        parts = [p.strip() for p in text.split(separator) if p.strip()]
        if len(parts) >= 2:
            text = parts[0]
            break
    if text.lower() in BAD_TITLES or len(text) <= 3:
        return None
    return text


def is_marketing_fluff(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in MARKETING_FLUFF)


def clamp_description(text: Optional[str], limit: int = DESCRIPTION_MAX_CHARS) -> Optional[str]:
    """Collapse whitespace and cut to ``limit`` chars, ending on a sentence when possible."""
    cleaned = _clean_text(text)
    if not cleaned:
        return None
    if len(cleaned) <= limit:
        return cleaned
    trimmed = cleaned[:limit]
    last_period = trimmed.rfind(".")
    if last_period >= 80:
        return trimmed[: last_period + 1].strip()
    return trimmed.rstrip() + "…"


def _image_values(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        url = value.get("url") or value.get("contentUrl") or value.get("@id")
        return [url] if isinstance(url, str) else []
    if isinstance(value, list):
        urls = []
        for item in value:
            urls.extend(_image_values(item))
        return urls
    return []


class _JsonLdCollector:
    def __init__(self):
        self.images: List[str] = []
        self.name: Optional[str] = None
        self.description: Optional[str] = None

    def walk(self, node: Any, depth: int = 0) -> None:
        if depth > 8:
            return
        if isinstance(node, list):
            for item in node:
                self.walk(item, depth + 1)
            return
        if not isinstance(node, dict):
            return

        if node.get("@type") and (node.get("image") or node.get("logo")):
            self.images.extend(_image_values(node.get("image")))
            self.images.extend(_image_values(node.get("logo")))
            if not self.name and isinstance(node.get("name"), str):
                self.name = node["name"]
            if not self.description and isinstance(node.get("description"), str):
                self.description = node["description"]

        for value in node.values():
            if isinstance(value, (dict, list)):
                self.walk(value, depth + 1)


def _meta_key(tag) -> str:
    return (tag.get("property") or tag.get("name") or tag.get("itemprop") or "").strip().lower()


def _is_facebook_profile(host: str, path: str) -> bool:
    if not (host == "facebook.com" or host.endswith(".facebook.com") or host == "fb.com"):
        return False
    if path in ("", "/"):
        return False
    return not path.startswith(FACEBOOK_SKIP_PREFIXES)


def _is_instagram_profile(host: str, path: str) -> bool:
    if not (host == "instagram.com" or host.endswith(".instagram.com")):
        return False
    if path.startswith(INSTAGRAM_SKIP_PREFIXES):
        return False
    segments = [s for s in path.split("/") if s]
    return 1 <= len(segments) <= 2


def discover_social_links(soup: BeautifulSoup, base_url: str):
    """First Facebook and Instagram profile-shaped anchors on the page."""
    facebook_url = None
    instagram_url = None
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        absolute = resolve_url(href, base_url)
        if not is_safe_url(absolute):
            continue
        lowered = absolute.lower()
        if any(fragment in lowered for fragment in SOCIAL_SKIP_FRAGMENTS):
            continue

        parts = urlsplit(lowered)
        host = parts.hostname or ""
        if facebook_url is None and _is_facebook_profile(host, parts.path):
            facebook_url = absolute.split("#")[0]
        elif instagram_url is None and _is_instagram_profile(host, parts.path):
            instagram_url = absolute.split("#")[0]

        if facebook_url and instagram_url:
            break
    return facebook_url, instagram_url


def parse_page(html: str, base_url: str, discover_social: bool = True) -> PagePreview:
    """
    Extract a preview from an HTML document.

    Args:
        html: Document text (possibly truncated)
        base_url: Final URL of the page, used to resolve relative links
        discover_social: Look for Facebook/Instagram profile links

    Returns:
        PagePreview with at most three filtered image URLs.
    """
    soup = BeautifulSoup(html, "html.parser")

    candidates: List[str] = []
    og_title = None
    og_description = None
    meta_description = None

    for tag in soup.find_all("meta"):
        key = _meta_key(tag)
        content = (tag.get("content") or "").strip()
        if not key or not content:
            continue
        if key in IMAGE_META_KEYS:
            candidates.append(resolve_url(content, base_url))
        elif key == "og:title" and not og_title:
            og_title = content
        elif key == "og:description" and not og_description:
            og_description = content
        elif key == "description" and not meta_description:
            meta_description = content

    json_ld = _JsonLdCollector()
    for script in soup.find_all("script", attrs={"type": re.compile(r"application/ld\+json", re.I)}):
        raw = script.string or script.get_text() or ""
        try:
            json_ld.walk(json.loads(raw))
        except ValueError:
            logger.debug(f"Skipping invalid JSON-LD block on {base_url}")
    candidates.extend(resolve_url(url, base_url) for url in json_ld.images)

    images = [url for url in filter_image_urls(candidates) if is_safe_url(url)][:MAX_PREVIEW_IMAGES]

    if not images:
        for img in soup.find_all("img", limit=IMG_SCAN_LIMIT):
            src = (img.get("src") or img.get("data-src") or "").strip()
            if not src or src.startswith("data:"):
                continue
            absolute = resolve_url(src, base_url)
            if is_safe_url(absolute) and is_acceptable_image_url(absolute):
                images = [absolute]
                break

    title_tag = soup.find("title")
    page_title = title_tag.get_text() if title_tag else None

    facebook_url = instagram_url = None
    if discover_social:
        facebook_url, instagram_url = discover_social_links(soup, base_url)

    return PagePreview(
        source_url=base_url,
        name=_clean_text(og_title) or _clean_text(json_ld.name) or _clean_text(page_title),
        description=_clean_text(og_description) or _clean_text(json_ld.description) or _clean_text(meta_description),
        images=images,
        facebook_url=facebook_url,
        instagram_url=instagram_url,
    )
