from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from regional_news.config import Settings
from regional_news.news import Normalizer
from regional_news.schemas import KeywordTable, NewsItem, StrategyKind


class FakeClock:
    """Shared time source: sleep() advances time instead of waiting."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self.sleeps: List[float] = []

    def time(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        newsdata_api_key="",
        newsapi_key="",
        gnews_api_key="",
        mock_mode=False,
        database_url="sqlite://",
    )


@pytest.fixture
def kr_table() -> KeywordTable:
    return KeywordTable.from_mapping({
        "KR": [
            ("Samsung", "company", 10),
            ("Seoul", "city", 6),
            ("Korean AI", "technology", 8),
        ],
    })


def newsdata_raw(
    n: int,
    *,
    title: Optional[str] = None,
    link: Optional[str] = None,
    hours_ago: int = 1,
    source: str = "reuters",
) -> Dict[str, Any]:
    published = datetime.now(timezone.utc) - timedelta(hours=hours_ago)
    return {
        "title": title or f"Samsung ships new memory product number {n}",
        "description": f"Story {n}: the Seoul company said shipments start next quarter for data centres.",
        "link": link or f"https://www.example.com/news/story-{n}",
        "source_id": source,
        "creator": ["Reporter"],
        "pubDate": published.strftime("%Y-%m-%d %H:%M:%S"),
    }


def make_item(
    n: int,
    *,
    partition_key: str = "KR",
    published_at: Optional[datetime] = None,
    region_relevance: int = 70,
    topical_score: int = 50,
    source: str = "reuters",
    title: Optional[str] = None,
    description: Optional[str] = None,
    strategy: Optional[StrategyKind] = None,
) -> NewsItem:
    normalizer = Normalizer()
    title = title or f"Headline number {n} about regional technology"
    url = f"https://example.com/{partition_key.lower()}/{n}"
    return NewsItem(
        identity_key=normalizer.identity_key(url, title),
        title=title,
        description=description or f"Description for item {n} with enough characters to pass.",
        url=url,
        source=source,
        published_at=published_at or datetime.now(timezone.utc) - timedelta(hours=n),
        partition_key=partition_key,
        region_relevance=region_relevance,
        topical_score=topical_score,
        strategy=strategy,
    )
