from regional_news.news import Deduplicator, Normalizer, dedupe
from tests.conftest import make_item, newsdata_raw


def test_five_items_with_shared_url_keeps_four_and_the_earlier_one():
    normalizer = Normalizer()
    shared = "https://www.example.com/news/shared-story"
    raws = [
        newsdata_raw(1),
        newsdata_raw(2, link=shared, title="Samsung and LG sign display deal"),
        newsdata_raw(3),
        newsdata_raw(4, link=shared + "?utm_source=feed", title="Samsung and LG sign display deal!"),
        newsdata_raw(5),
    ]
    items = [normalizer.normalize("newsdata", raw, "KR") for raw in raws]

    unique = dedupe(items)

    assert len(unique) == 4
    assert unique[1] is items[1]
    assert items[3] not in unique
    assert len({i.identity_key for i in unique}) == 4


def test_losers_are_marked_superseded():
    a = make_item(1)
    dup = a.model_copy(update={"source": "other-wire"})
    dedup = Deduplicator()

    kept = dedup.dedupe([a, make_item(2), dup])

    assert [i.identity_key for i in kept] == [a.identity_key, make_item(2).identity_key]
    assert len(dedup.last_superseded) == 1
    assert dedup.last_superseded[0].is_superseded
    assert dedup.last_superseded[0].source == "other-wire"
    assert not a.is_superseded


def test_order_is_stable():
    items = [make_item(n) for n in range(6)]
    assert dedupe(items + items[:3]) == items
