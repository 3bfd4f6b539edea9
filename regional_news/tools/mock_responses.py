"""
Simulated provider payloads for mock mode and tests.

Provides deterministic responses based on request-signature hashing, shaped
exactly like the live provider responses so the normal adapters parse them.
"""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ..config import PARTITIONS
from ..schemas import FetchRequest

logger = logging.getLogger(__name__)

_HEADLINES = [
    ("{org} unveils new AI chip roadmap",
     "{org} said its next generation of artificial intelligence accelerators will ship next year, "
     "targeting data centre customers in {country} and abroad."),
    ("{country} startup backed by {org} raises Series B",
     "A {country} startup closed a funding round led by {org}'s venture arm, "
     "valuing the company at over $500 million."),
    ("{org} reports record quarterly earnings on cloud demand",
     "Revenue at {org} rose sharply as enterprise technology spending in {country} "
     "recovered, beating analyst estimates."),
    ("Regulators in {country} open review of {org} machine learning tools",
     "Officials will examine how {org} trains its machine learning models on consumer data, "
     "a move that could reshape innovation policy."),
    ("{org} partners with universities on robotics innovation",
     "{org} announced a multi-year research programme with universities in {country} "
     "focused on robotics and automation technology."),
    ("Tech stocks in {country} climb as {org} leads rally",
     "Shares of {org} gained more than four percent, lifting the broader technology index "
     "in {country} to a three-month high."),
]

_OUTLETS = ["reuters", "bloomberg", "techcrunch", "local-wire", "business-daily"]


def _seed(text: str) -> int:
    return int(hashlib.md5(text.encode()).hexdigest()[:8], 16)


def _partition_from_request(request: FetchRequest) -> str:
    params = request.query_params()
    code = str(params.get("country", "")).upper()
    if code in PARTITIONS:
        return code
    query = str(params.get("q", "") or params.get("organization", "")).lower()
    for pk, cfg in PARTITIONS.items():
        names = [n.lower() for n in cfg["search_names"] + cfg["organizations"]]
        if any(n in query for n in names):
            return pk
    return "GB"


def generate_articles(
    request: FetchRequest,
    size: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Deterministic NewsData-shaped raw articles for a request."""
    pk = _partition_from_request(request)
    cfg = PARTITIONS[pk]
    seed = _seed(request.signature())
    params = request.query_params()
    size = size or int(params.get("size") or params.get("pageSize") or params.get("max") or 5)
    now = now or datetime.now(timezone.utc)

    suffix = cfg["domain_suffixes"][-1]
    results = []
    for i in range(size):
        org = cfg["organizations"][(seed + i) % len(cfg["organizations"])]
        title_tpl, desc_tpl = _HEADLINES[(seed + i) % len(_HEADLINES)]
        outlet = _OUTLETS[(seed + i) % len(_OUTLETS)]
        slug = f"{org}-{(seed + i) % 997}".lower().replace(" ", "-")
        domain = f"{outlet}{suffix}" if i % 2 == 0 else f"{outlet}.com"
        results.append({
            "title": title_tpl.format(org=org, country=cfg["name"]),
            "description": desc_tpl.format(org=org, country=cfg["name"]),
            "link": f"https://www.{domain}/news/{slug}",
            "source_id": outlet,
            "creator": ["Staff Reporter"],
            "pubDate": (now - timedelta(hours=(seed + i) % 72)).strftime("%Y-%m-%d %H:%M:%S"),
        })
    return results


def _as_newsapi(article: Dict[str, Any]) -> Dict[str, Any]:
    published = datetime.strptime(article["pubDate"], "%Y-%m-%d %H:%M:%S")
    return {
        "source": {"id": article["source_id"], "name": article["source_id"].title()},
        "author": article["creator"][0],
        "title": article["title"],
        "description": article["description"],
        "url": article["link"],
        "publishedAt": published.strftime("%Y-%m-%dT%H:%M:%SZ"),
    }


def get_mock_payload(request: FetchRequest) -> Dict[str, Any]:
    """Fixture generator used by SimulatedSource. Shaped like the requested provider."""
    articles = generate_articles(request)
    logger.debug(f"Mock payload: {len(articles)} articles for {request.signature()}")
    if request.provider in ("newsapi", "gnews"):
        converted = [_as_newsapi(a) for a in articles]
        if request.provider == "gnews":
            for a in converted:
                a.pop("author", None)
        return {"status": "ok", "totalResults": len(converted), "totalArticles": len(converted), "articles": converted}
    return {"status": "success", "totalResults": len(articles), "results": articles}
