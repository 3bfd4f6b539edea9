from datetime import datetime, timedelta, timezone

import pytest

from regional_news.news import RelevanceScorer, rank
from regional_news.schemas import KeywordTable, StrategyKind
from tests.conftest import make_item

# No topical term (not even the substring "ai") appears in these texts
PLAIN_TITLE = "Quarterly results from Samsung in Seoul"
PLAIN_DESCRIPTION = "Shares moved higher after the report was published today."


@pytest.fixture
def scorer(kr_table) -> RelevanceScorer:
    return RelevanceScorer(keyword_table=kr_table)


def _plain(**kwargs):
    return make_item(1, title=PLAIN_TITLE, description=PLAIN_DESCRIPTION, **kwargs)


def test_topical_base_and_increments(scorer):
    plain = scorer.score(_plain())
    assert plain.topical_score == 50

    techy = scorer.score(make_item(
        2,
        title="Machine learning startup targets chips",
        description="The technology company focuses on innovation in hardware design.",
    ))
    # machine learning, technology, innovation, startup
    assert techy.topical_score == 90
    assert {"machine learning", "technology", "innovation", "startup"} <= set(techy.keywords)


def test_region_relevance_sums_weights(scorer):
    item = scorer.score(_plain())
    # Samsung 10×5 + Seoul 6×5, example.com carries no regional suffix
    assert item.region_relevance == 80
    assert item.entities == ["Samsung", "Seoul"]


def test_regional_domain_bonus_and_clamp(scorer):
    item = _plain().model_copy(update={"url": "https://www.koreaherald.co.kr/view/1"})
    assert scorer.score(item).region_relevance == 100


def test_domain_bonus_applies_only_to_own_partition_suffix(kr_table):
    scorer = RelevanceScorer(keyword_table=kr_table)
    item = make_item(3, title="Generic headline for a test", description="Nothing that matches any keyword here.")
    kr_domain = item.model_copy(update={"url": "https://news.example.kr/a"})
    jp_domain = item.model_copy(update={"url": "https://news.example.jp/a"})
    assert scorer.score(kr_domain).region_relevance == 20
    assert scorer.score(jp_domain).region_relevance == 0


@pytest.mark.parametrize("strategy,expected", [
    (None, 0),
    (StrategyKind.REGION_CODE, 25),
    (StrategyKind.ENTITY, 30),
    (StrategyKind.REGION_NAME, 0),
])
def test_strategy_bonus(strategy, expected):
    scorer = RelevanceScorer(keyword_table=KeywordTable())
    item = make_item(4, title="Generic headline for a test", description="Nothing that matches any keyword here.",
                     strategy=strategy)
    assert scorer.score(item).region_relevance == expected


def test_scores_stay_in_bounds_with_extreme_constants(kr_table):
    scorer = RelevanceScorer(keyword_table=kr_table, base_score=90, term_increment=50, weight_multiplier=100)
    item = scorer.score(make_item(5, title="AI startup from Samsung in Seoul", description="technology innovation " * 3))
    assert 0 <= item.topical_score <= 100
    assert 0 <= item.region_relevance <= 100
    assert 0 <= item.analysis_score <= 100

    negative = RelevanceScorer(keyword_table=KeywordTable(), base_score=-40)
    assert negative.score(_plain()).topical_score == 0


def test_analysis_score_rewards_length_and_reputable_source(scorer):
    item = scorer.score(_plain(source="reuters"))
    assert item.analysis_score == 95

    short = make_item(6, title="Short title", description="Just long enough text", source="blog")
    assert scorer.score(short).analysis_score == 60


def test_scoring_is_deterministic(scorer, kr_table):
    item = _plain()
    first = scorer.score(item, kr_table)
    second = scorer.score(item, kr_table)
    assert first.model_dump() == second.model_dump()
    # input untouched
    assert item.region_relevance == 70


def test_rank_orders_by_region_then_topical_then_recency():
    now = datetime.now(timezone.utc)
    a = make_item(1, region_relevance=90, topical_score=50, published_at=now - timedelta(days=2))
    b = make_item(2, region_relevance=90, topical_score=70, published_at=now - timedelta(days=3))
    c = make_item(3, region_relevance=90, topical_score=70, published_at=now - timedelta(days=1))
    d = make_item(4, region_relevance=95, topical_score=10, published_at=now - timedelta(days=5))

    assert [i.identity_key for i in rank([a, b, c, d])] == [
        d.identity_key, c.identity_key, b.identity_key, a.identity_key,
    ]


def test_rank_keeps_arrival_order_on_full_ties():
    when = datetime(2024, 5, 1, tzinfo=timezone.utc)
    items = [make_item(n, region_relevance=80, topical_score=60, published_at=when) for n in range(5)]
    assert [i.identity_key for i in rank(items)] == [i.identity_key for i in items]
