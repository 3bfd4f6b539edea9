"""
News item and keyword reference data models.

NewsItem is the atomic unit of the pipeline. It is created by the Normalizer,
scored by the RelevanceScorer, possibly marked superseded by the
Deduplicator, and finally committed or evicted by the RetentionManager.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from pydantic import BaseModel, Field, field_validator

from .base import Category, StrategyKind


def clamp_score(value) -> int:
    """Clamp any numeric score into [0, 100]."""
    if value is None:
        return 0
    return max(0, min(100, int(value)))


class NewsItem(BaseModel):
    """Canonical item record, independent of the provider it came from."""
    identity_key: str

    # Core content
    title: str
    description: str
    url: str
    source: str
    author: Optional[str] = None

    # Temporal
    published_at: datetime
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Partitioning / classification
    partition_key: str
    category: Category = Category.TECHNOLOGY

    # Scores (assigned by RelevanceScorer)
    topical_score: int = 0
    region_relevance: int = 0
    analysis_score: int = 0

    # Extracted during scoring
    keywords: List[str] = Field(default_factory=list)
    entities: List[str] = Field(default_factory=list)

    # Where it came from
    provider: str = ""
    strategy: Optional[StrategyKind] = None
    provenance: str = ""

    # Set by the Deduplicator only
    is_superseded: bool = False

    @field_validator('topical_score', 'region_relevance', 'analysis_score', mode='before')
    @classmethod
    def clamp_scores(cls, v):
        return clamp_score(v)

    @field_validator('published_at', 'fetched_at', mode='after')
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator('partition_key', mode='before')
    @classmethod
    def upper_partition(cls, v):
        return str(v).strip().upper() if v else ""

    def text(self) -> str:
        """Concatenated title + description used for keyword matching."""
        return f"{self.title} {self.description}".lower()


class KeywordWeight(BaseModel):
    """Static-ish reference row consulted by the scorer."""
    partition_key: str
    keyword: str
    kind: str = "company"       # company, city, technology, business
    weight: int = Field(default=1, gt=0)

    @field_validator('partition_key', mode='before')
    @classmethod
    def upper_partition(cls, v):
        return str(v).strip().upper()


class KeywordTable:
    """
    Keyword weights indexed by partition.

    Rows are unique per (partition_key, keyword), compared case-insensitively.
    Adding a duplicate replaces the existing row's kind and weight.
    """

    def __init__(self, rows: Optional[Iterable[KeywordWeight]] = None):
        self._rows: Dict[Tuple[str, str], KeywordWeight] = {}
        for row in rows or []:
            self.add(row)

    def add(self, row: KeywordWeight) -> None:
        self._rows[(row.partition_key, row.keyword.lower())] = row

    def for_partition(self, partition_key: str) -> List[KeywordWeight]:
        """Rows for one partition, heaviest first then alphabetical."""
        pk = partition_key.upper()
        rows = [r for (p, _), r in self._rows.items() if p == pk]
        return sorted(rows, key=lambda r: (-r.weight, r.keyword.lower()))

    def top_keywords(self, partition_key: str, kind: str, n: int) -> List[str]:
        return [r.keyword for r in self.for_partition(partition_key) if r.kind == kind][:n]

    def partitions(self) -> List[str]:
        return sorted({p for p, _ in self._rows})

    def __len__(self) -> int:
        return len(self._rows)

    @classmethod
    def from_mapping(cls, mapping: Dict[str, List[Tuple[str, str, int]]]) -> "KeywordTable":
        """Build from {partition: [(keyword, kind, weight), ...]}."""
        rows = [
            KeywordWeight(partition_key=pk, keyword=kw, kind=kind, weight=weight)
            for pk, entries in mapping.items()
            for kw, kind, weight in entries
        ]
        return cls(rows)
