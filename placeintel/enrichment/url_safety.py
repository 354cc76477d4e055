"""URL validation and normalization for outbound page fetches."""
import ipaddress
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback", "0.0.0.0"}
BLOCKED_SUFFIXES = (".local", ".internal", ".localhost", ".lan", ".home.arpa")

TRACKING_PARAMS = {"ref", "fbclid", "gclid", "srsltid", "mc_cid", "mc_eid"}

LEAF_PATHS = {"/", "/index.html", "/index.htm", "/home", "/contact", "/contact-us", "/about", "/about-us"}


def _is_private_ip(host: str) -> bool:
    try:
        ip = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def is_safe_url(url: Optional[str]) -> bool:
    """http(s) only, and never a loopback, private, link-local or internal host."""
    if not url:
        return False
    # urlsplit silently drops tab and newline, httpx rejects them
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in url):
        return False
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower().rstrip(".")
        port = parts.port
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not host or port == 0:
        return False
    if host in BLOCKED_HOSTNAMES or host.endswith(BLOCKED_SUFFIXES):
        return False
    if "." not in host and ":" not in host:
        return False
    return not _is_private_ip(host)


def strip_tracking_params(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url
    kept = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.lower().startswith("utm_") and key.lower() not in TRACKING_PARAMS
    ]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment))


def normalize_website_url(url: Optional[str]) -> Optional[str]:
    """
    Canonical homepage URL for a place website.

    Adds a scheme, drops query and fragment, and collapses leaf pages such as
    ``/contact`` or ``/index.html`` back to ``/``.
    """
    value = (url or "").strip()
    if not value:
        return None
    if not value.lower().startswith(("http://", "https://")):
        value = f"https://{value}"
    try:
        parts = urlsplit(value)
    except ValueError:
        return None
    if not parts.netloc:
        return None

    path = parts.path or "/"
    lowered = path.lower()
    if lowered in LEAF_PATHS or lowered.rstrip("/") in LEAF_PATHS or lowered.endswith(("/index.html", "/index.htm")):
        path = "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def cache_key_for_url(url: str) -> str:
    """Preview cache key: host and path only."""
    parts = urlsplit(url)
    return f"preview:{(parts.hostname or '').lower()}{parts.path or '/'}"


def resolve_url(href: str, base: str) -> str:
    try:
        return urljoin(base, href.strip())
    except ValueError:
        return href
