"""
Provider payload → NewsItem normalization.

Each provider returns a differently shaped JSON item. One adapter per
provider maps its raw dict onto CanonicalFields; the Normalizer then applies
the quality filter, computes the identity key and classifies the category.

Adding a provider = writing one adapter and registering it in ADAPTERS.

Rejected items raise MalformedPayloadError from normalize(); the batch
helper logs and drops them so one bad item never sinks a payload.
"""

import hashlib
import html
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..config import CATEGORY_KEYWORDS, get_settings
from ..errors import MalformedPayloadError
from ..schemas import Category, NewsItem, StrategyKind
from ..tools.domain_utils import extract_domain, normalize_url

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


@dataclass
class CanonicalFields:
    """Provider-neutral view of one raw item, before validation."""
    title: str
    description: str
    url: str
    source: str
    author: Optional[str]
    published: Any


def _clean(text: Any) -> str:
    if not text:
        return ""
    return _SPACE_RE.sub(" ", _TAG_RE.sub(" ", html.unescape(str(text)))).strip()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse the timestamp formats providers actually send. Returns None if unparseable.

    Examples:
        "2024-05-01 08:30:00"       (newsdata, UTC)
        "2024-05-01T08:30:00Z"      (newsapi / gnews)
        1714552200                  (epoch seconds)
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        try:
            dt = datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# ADAPTERS - one per provider
# ═══════════════════════════════════════════════════════════════════════════

class ProviderAdapter:
    provider = "base"

    def to_fields(self, raw: Dict[str, Any]) -> CanonicalFields:
        raise NotImplementedError


class NewsDataAdapter(ProviderAdapter):
    """newsdata.io: link / pubDate / source_id / creator[]"""
    provider = "newsdata"

    def to_fields(self, raw: Dict[str, Any]) -> CanonicalFields:
        creator = raw.get("creator")
        author = creator[0] if isinstance(creator, list) and creator else creator
        return CanonicalFields(
            title=_clean(raw.get("title")),
            description=_clean(raw.get("description")),
            url=str(raw.get("link") or "").strip(),
            source=str(raw.get("source_id") or raw.get("source_name") or "unknown"),
            author=str(author) if author else None,
            published=raw.get("pubDate"),
        )


class NewsApiAdapter(ProviderAdapter):
    """newsapi.org: url / publishedAt / source.name / author"""
    provider = "newsapi"

    def to_fields(self, raw: Dict[str, Any]) -> CanonicalFields:
        source = raw.get("source") or {}
        name = source.get("name") if isinstance(source, dict) else source
        return CanonicalFields(
            title=_clean(raw.get("title")),
            description=_clean(raw.get("description")),
            url=str(raw.get("url") or "").strip(),
            source=str(name or "unknown"),
            author=raw.get("author") or None,
            published=raw.get("publishedAt"),
        )


class GNewsAdapter(NewsApiAdapter):
    """gnews.io: newsapi layout, no author, content may stand in for description."""
    provider = "gnews"

    def to_fields(self, raw: Dict[str, Any]) -> CanonicalFields:
        fields = super().to_fields(raw)
        if not fields.description:
            fields.description = _clean(raw.get("content"))
        fields.author = None
        return fields


ADAPTERS: Dict[str, ProviderAdapter] = {
    a.provider: a for a in (NewsDataAdapter(), NewsApiAdapter(), GNewsAdapter())
}


def raw_items(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Pull the item list out of a provider response body."""
    items = payload.get("results")
    if not isinstance(items, list):
        items = payload.get("articles")
    if not isinstance(items, list):
        return []
    return [i for i in items if isinstance(i, dict)]


# ═══════════════════════════════════════════════════════════════════════════
# NORMALIZER
# ═══════════════════════════════════════════════════════════════════════════

class Normalizer:
    """Validates adapter output and builds NewsItem records."""

    def __init__(
        self,
        min_title_length: int = 10,
        min_description_length: int = 20,
        identity_title_prefix: int = 50,
    ):
        self.min_title_length = min_title_length
        self.min_description_length = min_description_length
        self.identity_title_prefix = identity_title_prefix

    @classmethod
    def from_settings(cls, settings=None) -> "Normalizer":
        settings = settings or get_settings()
        return cls(
            min_title_length=settings.min_title_length,
            min_description_length=settings.min_description_length,
            identity_title_prefix=settings.identity_title_prefix,
        )

    def identity_key(self, url: str, title: str) -> str:
        """sha1 of normalized URL + casefolded, punctuation-free title prefix."""
        folded = _SPACE_RE.sub(" ", _PUNCT_RE.sub("", title.casefold())).strip()
        basis = f"{normalize_url(url)}|{folded[:self.identity_title_prefix]}"
        return hashlib.sha1(basis.encode("utf-8")).hexdigest()

    def _check_quality(self, provider: str, fields: CanonicalFields) -> datetime:
        if not fields.title:
            raise MalformedPayloadError(provider, "empty title")
        if not fields.description:
            raise MalformedPayloadError(provider, "empty description")
        if len(fields.title) < self.min_title_length:
            raise MalformedPayloadError(provider, f"title shorter than {self.min_title_length} chars")
        if len(fields.description) < self.min_description_length:
            raise MalformedPayloadError(provider, f"description shorter than {self.min_description_length} chars")
        if not fields.url or not normalize_url(fields.url):
            raise MalformedPayloadError(provider, "missing url")
        published = parse_timestamp(fields.published)
        if published is None:
            raise MalformedPayloadError(provider, f"unparseable timestamp {fields.published!r}")
        return published

    def normalize(
        self,
        provider: str,
        raw: Dict[str, Any],
        partition_key: str,
        strategy: Optional[StrategyKind] = None,
    ) -> NewsItem:
        """Map one raw provider item to a NewsItem. Raises MalformedPayloadError."""
        adapter = ADAPTERS.get(provider)
        if adapter is None:
            raise MalformedPayloadError(provider, "no adapter registered for provider")
        if not isinstance(raw, dict):
            raise MalformedPayloadError(provider, f"item is {type(raw).__name__}, expected object")

        fields = adapter.to_fields(raw)
        published = self._check_quality(provider, fields)
        if fields.source == "unknown":
            fields.source = extract_domain(fields.url) or "unknown"

        return NewsItem(
            identity_key=self.identity_key(fields.url, fields.title),
            title=fields.title,
            description=fields.description,
            url=fields.url,
            source=fields.source,
            author=fields.author,
            published_at=published,
            partition_key=partition_key,
            category=classify_category(f"{fields.title} {fields.description}"),
            provider=provider,
            strategy=strategy,
            provenance=f"{strategy.value}:{provider}" if strategy else provider,
        )

    def normalize_payload(
        self,
        provider: str,
        payload: Dict[str, Any],
        partition_key: str,
        strategy: Optional[StrategyKind] = None,
    ) -> List[NewsItem]:
        """Normalize every item in a response body, dropping the malformed ones."""
        items: List[NewsItem] = []
        rejected = 0
        for raw in raw_items(payload):
            try:
                items.append(self.normalize(provider, raw, partition_key, strategy))
            except MalformedPayloadError as e:
                rejected += 1
                logger.debug(f"Rejected item: {e}")
        if rejected:
            logger.info(f"[{partition_key}] {provider}: kept {len(items)}, rejected {rejected} malformed items")
        return items


def classify_category(text: str) -> Category:
    """First matching category in CATEGORY_KEYWORDS order, else TECHNOLOGY."""
    padded = f" {_PUNCT_RE.sub(' ', text.lower())} "
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(kw in padded for kw in keywords):
            return Category(category)
    return Category.TECHNOLOGY


def normalize(provider: str, raw: Dict[str, Any], partition_key: str) -> NewsItem:
    """Module-level shortcut using settings-driven defaults."""
    return Normalizer.from_settings().normalize(provider, raw, partition_key)
