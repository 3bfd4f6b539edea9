"""
Relevance scoring for normalized items.

Three independent scores, all clamped to [0, 100]:

  topical_score     base + increment per topical term present
  region_relevance  Σ keyword weight × multiplier for the item's partition,
                    + bonus if the URL domain carries the partition's
                    regional suffix, + bonus for the strategy that found it
  analysis_score    content-quality heuristic (title/description length,
                    reputable outlet)

Scoring is a pure function of (item, keyword table, constants): the same
inputs always yield the same scores. Ranking is a stable sort, so exact
ties keep arrival order.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..config import PARTITIONS, REGIONAL_DOMAIN_SUFFIXES, REPUTABLE_SOURCES, TOPICAL_TERMS, get_settings
from ..schemas import KeywordTable, NewsItem, StrategyKind, clamp_score
from ..tools.domain_utils import matches_regional_suffix

logger = logging.getLogger(__name__)

# Matched keyword rows of these kinds are recorded as entities, the rest as keywords
ENTITY_KINDS = {"company", "city", "organization", "person"}


class RelevanceScorer:
    """Assigns topical, regional and analysis scores and extracts keywords/entities."""

    def __init__(
        self,
        keyword_table: Optional[KeywordTable] = None,
        topical_terms: Sequence[str] = TOPICAL_TERMS,
        base_score: int = 50,
        term_increment: int = 10,
        weight_multiplier: int = 5,
        domain_bonus: int = 20,
        strategy_bonuses: Optional[Dict[StrategyKind, int]] = None,
        reputable_sources: Sequence[str] = REPUTABLE_SOURCES,
    ):
        self.keyword_table = keyword_table if keyword_table is not None else KeywordTable()
        self.topical_terms = [t.lower() for t in topical_terms]
        self.base_score = base_score
        self.term_increment = term_increment
        self.weight_multiplier = weight_multiplier
        self.domain_bonus = domain_bonus
        # Region-name queries carry no bonus: the country name in free text is no filter
        self.strategy_bonuses = strategy_bonuses if strategy_bonuses is not None else {
            StrategyKind.REGION_CODE: 25,
            StrategyKind.ENTITY: 30,
        }
        self.reputable_sources = [s.lower() for s in reputable_sources]

    @classmethod
    def from_settings(cls, keyword_table: Optional[KeywordTable] = None, settings=None) -> "RelevanceScorer":
        settings = settings or get_settings()
        return cls(
            keyword_table=keyword_table,
            base_score=settings.topical_base_score,
            term_increment=settings.topical_term_increment,
            weight_multiplier=settings.keyword_weight_multiplier,
            domain_bonus=settings.regional_domain_bonus,
            strategy_bonuses={
                StrategyKind.REGION_CODE: settings.region_strategy_bonus,
                StrategyKind.ENTITY: settings.entity_strategy_bonus,
            },
        )

    # ── Individual scores ──

    def topical(self, item: NewsItem) -> Tuple[int, List[str]]:
        """Base score plus one increment per topical term found (substring, case-insensitive)."""
        text = item.text()
        matched = [term for term in self.topical_terms if term in text]
        return clamp_score(self.base_score + self.term_increment * len(matched)), matched

    def regional(self, item: NewsItem, table: KeywordTable) -> Tuple[int, List[str], List[str]]:
        """Weighted keyword hits + domain bonus + strategy bonus. Returns (score, keywords, entities)."""
        text = item.text()
        total = 0
        keywords: List[str] = []
        entities: List[str] = []
        for row in table.for_partition(item.partition_key):
            if row.keyword.lower() in text:
                total += row.weight * self.weight_multiplier
                (entities if row.kind in ENTITY_KINDS else keywords).append(row.keyword)

        cfg = PARTITIONS.get(item.partition_key)
        suffixes = cfg["domain_suffixes"] if cfg else REGIONAL_DOMAIN_SUFFIXES
        if matches_regional_suffix(item.url, suffixes):
            total += self.domain_bonus

        if item.strategy is not None:
            total += self.strategy_bonuses.get(item.strategy, 0)

        return clamp_score(total), keywords, entities

    def analysis(self, item: NewsItem) -> int:
        score = 60
        if len(item.title) > 20:
            score += 10
        if len(item.description) > 50:
            score += 10
        source = f"{item.source} {item.url}".lower()
        if any(name in source for name in self.reputable_sources):
            score += 15
        return clamp_score(score)

    # ── Public API ──

    def score(self, item: NewsItem, keyword_table: Optional[KeywordTable] = None) -> NewsItem:
        """Return a scored copy of `item`. The input is not mutated."""
        table = keyword_table if keyword_table is not None else self.keyword_table
        topical, terms = self.topical(item)
        region, matched_keywords, entities = self.regional(item, table)
        return item.model_copy(update={
            "topical_score": topical,
            "region_relevance": region,
            "analysis_score": self.analysis(item),
            "keywords": sorted(set(terms) | set(matched_keywords)),
            "entities": entities,
        })

    def score_all(self, items: Iterable[NewsItem], keyword_table: Optional[KeywordTable] = None) -> List[NewsItem]:
        return [self.score(item, keyword_table) for item in items]


def ranking_key(item: NewsItem) -> Tuple[int, int, float]:
    """Sort key: region relevance desc, topical desc, newest first."""
    return (-item.region_relevance, -item.topical_score, -item.published_at.timestamp())


def rank(items: Iterable[NewsItem]) -> List[NewsItem]:
    """Stable sort by ranking_key; full ties keep arrival order."""
    return sorted(items, key=ranking_key)
