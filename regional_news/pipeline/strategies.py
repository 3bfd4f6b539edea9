"""
Fetch strategies: the query shapes the orchestrator runs per partition.

  RegionCodeStrategy   topical headlines filtered by the provider's country code
  EntityStrategy       free-text search for the partition's top organisations
  RegionNameStrategy   free-text search for the country name plus topical terms

A strategy only builds FetchRequests; it never performs I/O. Providers a
strategy can't express itself against (e.g. newsapi has no CN country code)
are skipped.
"""

from typing import Any, Dict, List, Optional, Sequence

from ..config import PROVIDERS
from ..schemas import CacheTier, FetchRequest, KeywordTable, StrategyKind


def _page_size(provider: str, wanted: int) -> int:
    return max(1, min(wanted, PROVIDERS.get(provider, {}).get("max_page_size", wanted)))


def _or_query(terms: Sequence[str]) -> str:
    return " OR ".join(f'"{t}"' if " " in t else t for t in terms)


class FetchStrategy:
    kind: StrategyKind

    def build_requests(
        self,
        partition_key: str,
        partition: Dict[str, Any],
        providers: Sequence[str],
        size: int,
    ) -> List[FetchRequest]:
        requests = []
        for provider in providers:
            request = self.request_for(provider, partition_key, partition, size)
            if request is not None:
                requests.append(request)
        return requests

    def request_for(
        self, provider: str, partition_key: str, partition: Dict[str, Any], size: int,
    ) -> Optional[FetchRequest]:
        raise NotImplementedError

    @property
    def name(self) -> str:
        return self.kind.value


class RegionCodeStrategy(FetchStrategy):
    """Broad technology headlines for the country code."""
    kind = StrategyKind.REGION_CODE

    def request_for(self, provider, partition_key, partition, size):
        if provider == "newsdata":
            return FetchRequest.build("newsdata", "news", {
                "country": partition.get("newsdata_country"),
                "category": "technology",
                "language": "en",
                "size": _page_size(provider, size),
            }, CacheTier.FAST)
        if provider == "newsapi" and partition.get("newsapi_country"):
            return FetchRequest.build("newsapi", "top-headlines", {
                "country": partition["newsapi_country"],
                "category": "technology",
                "pageSize": _page_size(provider, size),
            }, CacheTier.FAST)
        if provider == "gnews":
            return FetchRequest.build("gnews", "top-headlines", {
                "country": partition.get("newsdata_country"),
                "category": "technology",
                "lang": "en",
                "max": _page_size(provider, size),
            }, CacheTier.FAST)
        return None


class EntityStrategy(FetchStrategy):
    """Search for the partition's heaviest company keywords."""
    kind = StrategyKind.ENTITY

    def __init__(self, keyword_table: Optional[KeywordTable] = None, max_entities: int = 3):
        self.keyword_table = keyword_table
        self.max_entities = max_entities

    def entities(self, partition_key: str, partition: Dict[str, Any]) -> List[str]:
        names: List[str] = []
        if self.keyword_table is not None:
            names = self.keyword_table.top_keywords(partition_key, "company", self.max_entities)
        return names or list(partition.get("organizations", []))[:self.max_entities]

    def request_for(self, provider, partition_key, partition, size):
        names = self.entities(partition_key, partition)
        if not names:
            return None
        query = _or_query(names)
        if provider == "newsdata":
            return FetchRequest.build("newsdata", "news", {
                "q": query, "language": "en", "size": _page_size(provider, size),
            }, CacheTier.MEDIUM)
        if provider == "newsapi":
            return FetchRequest.build("newsapi", "everything", {
                "q": query, "language": "en", "sortBy": "publishedAt",
                "pageSize": _page_size(provider, size),
            }, CacheTier.MEDIUM)
        if provider == "gnews":
            return FetchRequest.build("gnews", "search", {
                "q": query, "lang": "en", "max": _page_size(provider, size),
            }, CacheTier.MEDIUM)
        return None


class RegionNameStrategy(FetchStrategy):
    """Country name in free text, narrowed to technology topics."""
    kind = StrategyKind.REGION_NAME

    TOPICS = ("technology", "AI", "startup")

    def request_for(self, provider, partition_key, partition, size):
        names = partition.get("search_names") or [partition.get("name", partition_key)]
        query = f"({_or_query(names[:2])}) AND ({_or_query(self.TOPICS)})"
        if provider == "newsdata":
            return FetchRequest.build("newsdata", "news", {
                "q": query, "language": "en", "size": _page_size(provider, size),
            }, CacheTier.FAST)
        if provider == "newsapi":
            return FetchRequest.build("newsapi", "everything", {
                "q": query, "language": "en", "sortBy": "publishedAt",
                "pageSize": _page_size(provider, size),
            }, CacheTier.FAST)
        if provider == "gnews":
            return FetchRequest.build("gnews", "search", {
                "q": query, "lang": "en", "max": _page_size(provider, size),
            }, CacheTier.FAST)
        return None


def default_strategies(keyword_table: Optional[KeywordTable] = None) -> List[FetchStrategy]:
    return [RegionCodeStrategy(), EntityStrategy(keyword_table), RegionNameStrategy()]
