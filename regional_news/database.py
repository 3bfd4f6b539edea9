"""
Persistence sink: stores committed items, keyword weights and per-day stats.

Tables:
  - partition_items: Committed items, unique per (partition_key, identity_key)
  - partition_keywords: Keyword weights consulted by the scorer
  - partition_stats: One row per partition per UTC day, upserted additively

Any storage failure is re-raised as PersistenceError; the retention manager
decides what to do with it.
"""

import json
import logging
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import (
    create_engine, Column, String, Integer, Float, Text, DateTime, Date, UniqueConstraint,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager

from .config import DEFAULT_KEYWORDS, get_settings
from .errors import PersistenceError
from .schemas import KeywordTable, KeywordWeight, NewsItem, PartitionStats

logger = logging.getLogger(__name__)

Base = declarative_base()


def _naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _utcnow_naive() -> datetime:
    return _naive_utc(datetime.now(timezone.utc))


# ── Models ───────────────────────────────────────────────────────────────────

class PartitionItemModel(Base):
    """Committed item for one partition."""
    __tablename__ = "partition_items"
    __table_args__ = (UniqueConstraint("partition_key", "identity_key", name="uq_partition_identity"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    partition_key = Column(String(20), nullable=False, index=True)
    identity_key = Column(String(40), nullable=False)

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False)
    url = Column(String(1000), nullable=False)
    source = Column(String(200))
    author = Column(String(200))
    published_at = Column(DateTime, nullable=False, index=True)
    fetched_at = Column(DateTime)

    category = Column(String(20))
    topical_score = Column(Integer, default=0)
    region_relevance = Column(Integer, default=0, index=True)
    analysis_score = Column(Integer, default=0)
    keywords = Column(Text)  # JSON array
    entities = Column(Text)  # JSON array

    provider = Column(String(50))
    strategy = Column(String(30))
    provenance = Column(String(100))


class PartitionKeywordModel(Base):
    """Keyword weight row: unique per (partition, keyword)."""
    __tablename__ = "partition_keywords"
    __table_args__ = (UniqueConstraint("partition_key", "keyword", name="uq_partition_keyword"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    partition_key = Column(String(20), nullable=False, index=True)
    keyword = Column(String(200), nullable=False)
    kind = Column(String(30), default="company")
    weight = Column(Integer, default=1)


class PartitionStatsModel(Base):
    """Per-partition, per-day counters."""
    __tablename__ = "partition_stats"

    partition_key = Column(String(20), primary_key=True)
    day = Column(Date, primary_key=True)
    total_items = Column(Integer, default=0)
    high_relevance_items = Column(Integer, default=0)
    distinct_sources = Column(Integer, default=0)
    avg_topical_score = Column(Float, default=0.0)
    provider_calls = Column(Integer, default=0)
    updated_at = Column(DateTime, default=_utcnow_naive)


def _row_to_item(row: PartitionItemModel) -> NewsItem:
    return NewsItem(
        identity_key=row.identity_key,
        title=row.title,
        description=row.description,
        url=row.url,
        source=row.source or "unknown",
        author=row.author,
        published_at=row.published_at,
        fetched_at=row.fetched_at or row.published_at,
        partition_key=row.partition_key,
        category=row.category or "technology",
        topical_score=row.topical_score,
        region_relevance=row.region_relevance,
        analysis_score=row.analysis_score,
        keywords=json.loads(row.keywords) if row.keywords else [],
        entities=json.loads(row.entities) if row.entities else [],
        provider=row.provider or "",
        strategy=row.strategy or None,
        provenance=row.provenance or "",
    )


def _row_to_stats(row: PartitionStatsModel) -> PartitionStats:
    return PartitionStats(
        partition_key=row.partition_key,
        day=row.day,
        total_items=row.total_items,
        high_relevance_items=row.high_relevance_items,
        distinct_sources=row.distinct_sources,
        avg_topical_score=row.avg_topical_score,
        provider_calls=row.provider_calls,
    )


# ── Persistence interface ────────────────────────────────────────────────────

class PersistenceSink:
    """What the retention manager needs from storage."""

    def store(self, item: NewsItem) -> None:
        raise NotImplementedError

    def remove(self, partition_key: str, identity_keys: Iterable[str]) -> int:
        raise NotImplementedError

    def query_by_partition(
        self,
        partition_key: str,
        min_relevance: int = 0,
        limit: int = 20,
        since: Optional[datetime] = None,
    ) -> List[NewsItem]:
        raise NotImplementedError

    def upsert_stats(self, partition_key: str, stats_delta: PartitionStats) -> PartitionStats:
        raise NotImplementedError

    def get_stats(self, partition_key: str, day: Optional[date] = None) -> Optional[PartitionStats]:
        raise NotImplementedError

    def reset_stats(self, partition_key: str, day: Optional[date] = None) -> None:
        raise NotImplementedError

    def commit(
        self,
        partition_key: str,
        items: Iterable[NewsItem],
        evicted_keys: Iterable[str],
        stats_deltas: Iterable[PartitionStats],
    ) -> None:
        """Store items, drop evictions and fold stats deltas for one batch."""
        for item in items:
            self.store(item)
        keys = list(evicted_keys)
        if keys:
            self.remove(partition_key, keys)
        for delta in stats_deltas:
            self.upsert_stats(partition_key, delta)


def _ordered(items: Iterable[NewsItem]) -> List[NewsItem]:
    return sorted(
        items,
        key=lambda i: (-i.region_relevance, -i.topical_score, -i.published_at.timestamp()),
    )


class InMemorySink(PersistenceSink):
    """Dict-backed sink for simulated runs and tests."""

    def __init__(self):
        self.items: Dict[Tuple[str, str], NewsItem] = {}
        self.stats: Dict[Tuple[str, date], PartitionStats] = {}

    def store(self, item: NewsItem) -> None:
        self.items[(item.partition_key, item.identity_key)] = item

    def remove(self, partition_key: str, identity_keys: Iterable[str]) -> int:
        removed = 0
        for key in identity_keys:
            if self.items.pop((partition_key.upper(), key), None) is not None:
                removed += 1
        return removed

    def query_by_partition(self, partition_key, min_relevance=0, limit=20, since=None):
        pk = partition_key.upper()
        matches = [
            i for (p, _), i in self.items.items()
            if p == pk and i.region_relevance >= min_relevance and (since is None or i.published_at >= since)
        ]
        return _ordered(matches)[:limit]

    def upsert_stats(self, partition_key, stats_delta):
        key = (partition_key.upper(), stats_delta.day)
        current = self.stats.get(key) or PartitionStats(partition_key=key[0], day=stats_delta.day)
        merged = current.merge(stats_delta)
        self.stats[key] = merged
        return merged

    def get_stats(self, partition_key, day=None):
        day = day or datetime.now(timezone.utc).date()
        return self.stats.get((partition_key.upper(), day))

    def reset_stats(self, partition_key, day=None):
        pk = partition_key.upper()
        for key in [k for k in self.stats if k[0] == pk and (day is None or k[1] == day)]:
            del self.stats[key]


# ── Database class ───────────────────────────────────────────────────────────

class Database(PersistenceSink):
    """SQLAlchemy-backed sink: singleton via get_database(), lazy-initialized."""

    def __init__(self, database_url: Optional[str] = None):
        settings = get_settings()
        url = database_url or settings.database_url
        if "aiosqlite" in url:
            url = url.replace("sqlite+aiosqlite", "sqlite")

        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise each session sees an empty database
            self.engine = create_engine(
                url, echo=False, connect_args={"check_same_thread": False}, poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def create_tables(self):
        """Create all tables (safe to call multiple times)."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Session:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Items ─────────────────────────────────────────────────────────

    @staticmethod
    def _write_item(session: Session, item: NewsItem) -> None:
        row = session.query(PartitionItemModel).filter_by(
            partition_key=item.partition_key, identity_key=item.identity_key,
        ).first()
        if row is None:
            row = PartitionItemModel(partition_key=item.partition_key, identity_key=item.identity_key)
            session.add(row)
        row.title = item.title
        row.description = item.description
        row.url = item.url
        row.source = item.source
        row.author = item.author
        row.published_at = _naive_utc(item.published_at)
        row.fetched_at = _naive_utc(item.fetched_at)
        row.category = item.category.value
        row.topical_score = item.topical_score
        row.region_relevance = item.region_relevance
        row.analysis_score = item.analysis_score
        row.keywords = json.dumps(item.keywords)
        row.entities = json.dumps(item.entities)
        row.provider = item.provider
        row.strategy = item.strategy.value if item.strategy else None
        row.provenance = item.provenance

    @staticmethod
    def _delete_items(session: Session, partition_key: str, keys: List[str]) -> int:
        if not keys:
            return 0
        return session.query(PartitionItemModel).filter(
            PartitionItemModel.partition_key == partition_key.upper(),
            PartitionItemModel.identity_key.in_(keys),
        ).delete(synchronize_session=False)

    def store(self, item: NewsItem) -> None:
        """Insert or replace one item, keyed by (partition_key, identity_key)."""
        with self.get_session() as session:
            self._write_item(session, item)

    def remove(self, partition_key: str, identity_keys: Iterable[str]) -> int:
        keys = list(identity_keys)
        if not keys:
            return 0
        with self.get_session() as session:
            return self._delete_items(session, partition_key, keys)

    def commit(self, partition_key, items, evicted_keys, stats_deltas) -> None:
        """One transaction: either the whole batch lands or none of it does."""
        pk = partition_key.upper()
        with self.get_session() as session:
            for item in items:
                self._write_item(session, item)
            self._delete_items(session, pk, list(evicted_keys))
            for delta in stats_deltas:
                self._fold_stats(session, pk, delta)

    def query_by_partition(
        self,
        partition_key: str,
        min_relevance: int = 0,
        limit: int = 20,
        since: Optional[datetime] = None,
    ) -> List[NewsItem]:
        """Items for one partition, most relevant first, then newest."""
        with self.get_session() as session:
            query = session.query(PartitionItemModel).filter(
                PartitionItemModel.partition_key == partition_key.upper(),
                PartitionItemModel.region_relevance >= min_relevance,
            )
            if since is not None:
                query = query.filter(PartitionItemModel.published_at >= _naive_utc(since))
            rows = query.order_by(
                PartitionItemModel.region_relevance.desc(),
                PartitionItemModel.topical_score.desc(),
                PartitionItemModel.published_at.desc(),
            ).limit(limit).all()
            return [_row_to_item(r) for r in rows]

    # ── Stats ─────────────────────────────────────────────────────────

    @staticmethod
    def _fold_stats(session: Session, pk: str, stats_delta: PartitionStats) -> PartitionStats:
        row = session.get(PartitionStatsModel, (pk, stats_delta.day))
        current = _row_to_stats(row) if row else PartitionStats(partition_key=pk, day=stats_delta.day)
        merged = current.merge(stats_delta)
        session.merge(PartitionStatsModel(
            partition_key=pk,
            day=merged.day,
            total_items=merged.total_items,
            high_relevance_items=merged.high_relevance_items,
            distinct_sources=merged.distinct_sources,
            avg_topical_score=merged.avg_topical_score,
            provider_calls=merged.provider_calls,
            updated_at=_utcnow_naive(),
        ))  # merge = upsert
        return merged

    def upsert_stats(self, partition_key: str, stats_delta: PartitionStats) -> PartitionStats:
        """Fold a batch delta into that day's row (creating it if needed)."""
        with self.get_session() as session:
            return self._fold_stats(session, partition_key.upper(), stats_delta)

    def get_stats(self, partition_key: str, day: Optional[date] = None) -> Optional[PartitionStats]:
        day = day or datetime.now(timezone.utc).date()
        with self.get_session() as session:
            row = session.get(PartitionStatsModel, (partition_key.upper(), day))
            return _row_to_stats(row) if row else None

    def reset_stats(self, partition_key: str, day: Optional[date] = None) -> None:
        """The only way total_items ever goes down."""
        with self.get_session() as session:
            query = session.query(PartitionStatsModel).filter_by(partition_key=partition_key.upper())
            if day is not None:
                query = query.filter_by(day=day)
            deleted = query.delete(synchronize_session=False)
        logger.info(f"Stats reset for {partition_key}: {deleted} rows")

    # ── Keywords ──────────────────────────────────────────────────────

    def seed_keywords(self, mapping: Optional[Dict[str, List[Tuple[str, str, int]]]] = None) -> int:
        """Insert or update keyword weights. Defaults to DEFAULT_KEYWORDS."""
        table = KeywordTable.from_mapping(mapping if mapping is not None else DEFAULT_KEYWORDS)
        count = 0
        with self.get_session() as session:
            existing = {
                (r.partition_key, r.keyword.lower()): r
                for r in session.query(PartitionKeywordModel).all()
            }
            for pk in table.partitions():
                for kw in table.for_partition(pk):
                    row = existing.get((kw.partition_key, kw.keyword.lower()))
                    if row is None:
                        session.add(PartitionKeywordModel(
                            partition_key=kw.partition_key, keyword=kw.keyword,
                            kind=kw.kind, weight=kw.weight,
                        ))
                    else:
                        row.kind = kw.kind
                        row.weight = kw.weight
                    count += 1
        logger.info(f"Seeded {count} keyword weights across {len(table.partitions())} partitions")
        return count

    def load_keyword_table(self) -> KeywordTable:
        with self.get_session() as session:
            rows = session.query(PartitionKeywordModel).all()
            return KeywordTable(
                KeywordWeight(partition_key=r.partition_key, keyword=r.keyword, kind=r.kind, weight=r.weight)
                for r in rows
            )


# ── Singleton ────────────────────────────────────────────────────────────────

_db: Optional[Database] = None


def get_database() -> Database:
    """Get or create database instance."""
    global _db
    if _db is None:
        _db = Database()
        _db.create_tables()
    return _db
