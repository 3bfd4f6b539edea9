"""
URL and domain utilities.
Handles URL normalization for identity keys and regional-suffix matching.
"""

import logging
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import tldextract

from ..config import REGIONAL_DOMAIN_SUFFIXES

logger = logging.getLogger(__name__)

# Bundled public-suffix snapshot only; never hits the network at runtime.
_extract = tldextract.TLDExtract(suffix_list_urls=())

# Query params that only track the click, never change the article
_TRACKING_PARAMS = {"utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content", "ref", "fbclid", "gclid"}


def normalize_url(url: str) -> str:
    """
    Canonical form of an article URL used for identity.

    Examples:
        "HTTPS://WWW.Example.com/a/?utm_source=x" → "https://example.com/a"
        "example.com/story#top" → "https://example.com/story"
    """
    if not url:
        return ""

    text = url.strip()
    if "://" not in text:
        text = "https://" + text

    parsed = urlparse(text)
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if parsed.port and parsed.port not in (80, 443):
        host = f"{host}:{parsed.port}"

    path = parsed.path.rstrip("/")
    query = urlencode(sorted(
        (k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        if k.lower() not in _TRACKING_PARAMS
    ))
    scheme = parsed.scheme.lower() if parsed.scheme in ("http", "https") else "https"
    return urlunparse((scheme, host, path, "", query, ""))


def extract_domain(url: str) -> Optional[str]:
    """
    Hostname of a URL without the www prefix, lower-cased.

    Examples:
        "https://www.koreaherald.co.kr/view" → "koreaherald.co.kr"
        "not a url" → None
    """
    extracted = _extract((url or "").strip())
    if not extracted.domain or not extracted.suffix:
        return None
    parts = [p for p in extracted.subdomain.lower().split(".") if p]
    if parts and parts[0] == "www":
        parts = parts[1:]
    parts.extend([extracted.domain.lower(), extracted.suffix.lower()])
    return ".".join(parts)


def matches_regional_suffix(url: str, suffixes: Optional[Iterable[str]] = None) -> bool:
    """
    True if the URL's public suffix is (or ends with) a regional suffix.

    Only the public suffix is compared, so "kr.example.com" is not Korean.

    Examples:
        "https://www.asahi.jp/story" → True
        "https://abc.net.au/news", [".au"] → True
    """
    suffix = _extract((url or "").strip()).suffix.lower()
    if not suffix:
        return False
    suffix = "." + suffix
    for candidate in suffixes if suffixes is not None else REGIONAL_DOMAIN_SUFFIXES:
        if suffix.endswith(candidate.lower()):
            return True
    return False
