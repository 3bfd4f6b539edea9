"""
Configuration management for the regional news aggregator.
Provider credentials, request budgets, cache TTLs, scoring constants and
retention policy defaults are all loaded from environment variables.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Provider credentials
    newsdata_api_key: str = Field(default="", alias="NEWSDATA_API_KEY")
    newsapi_key: str = Field(default="", alias="NEWSAPI_KEY")
    gnews_api_key: str = Field(default="", alias="GNEWS_API_KEY")

    # Simulated data source instead of live providers (chosen once at construction)
    mock_mode: bool = Field(default=False, alias="MOCK_MODE")

    # ── Request budgets ──
    # Free tiers throttle hard. 5 calls per rolling minute keeps us well under
    # every provider's published ceiling; the daily cap mirrors the paid-plan
    # headroom we actually have.
    provider_calls_per_window: int = Field(default=5, alias="PROVIDER_CALLS_PER_WINDOW")
    provider_window_seconds: float = Field(default=60.0, alias="PROVIDER_WINDOW_SECONDS")
    provider_daily_limit: int = Field(default=400, alias="PROVIDER_DAILY_LIMIT")

    # ── Retry / backoff ──
    provider_max_retries: int = Field(default=2, alias="PROVIDER_MAX_RETRIES")
    backoff_base_seconds: float = Field(default=10.0, alias="BACKOFF_BASE_SECONDS")
    backoff_max_seconds: float = Field(default=60.0, alias="BACKOFF_MAX_SECONDS")
    request_timeout_seconds: float = Field(default=15.0, alias="REQUEST_TIMEOUT_SECONDS")

    # ── Pacing ──
    inter_call_delay_seconds: float = Field(default=1.5, alias="INTER_CALL_DELAY_SECONDS")
    inter_partition_delay_seconds: float = Field(default=2.0, alias="INTER_PARTITION_DELAY_SECONDS")

    # ── Tiered cache TTLs (seconds) ──
    cache_fast_ttl: int = Field(default=300, alias="CACHE_FAST_TTL")         # quotes / headlines
    cache_medium_ttl: int = Field(default=1800, alias="CACHE_MEDIUM_TTL")    # market / listings
    cache_slow_ttl: int = Field(default=86400, alias="CACHE_SLOW_TTL")       # reference data

    # ── Quality filter ──
    min_title_length: int = Field(default=10, alias="MIN_TITLE_LENGTH")
    min_description_length: int = Field(default=20, alias="MIN_DESCRIPTION_LENGTH")
    identity_title_prefix: int = Field(default=50, alias="IDENTITY_TITLE_PREFIX")

    # ── Scoring constants ──
    # Empirically chosen upstream, no derivation. Tune per deployment.
    topical_base_score: int = Field(default=50, alias="TOPICAL_BASE_SCORE")
    topical_term_increment: int = Field(default=10, alias="TOPICAL_TERM_INCREMENT")
    keyword_weight_multiplier: int = Field(default=5, alias="KEYWORD_WEIGHT_MULTIPLIER")
    regional_domain_bonus: int = Field(default=20, alias="REGIONAL_DOMAIN_BONUS")
    region_strategy_bonus: int = Field(default=25, alias="REGION_STRATEGY_BONUS")
    entity_strategy_bonus: int = Field(default=30, alias="ENTITY_STRATEGY_BONUS")
    high_relevance_threshold: int = Field(default=80, alias="HIGH_RELEVANCE_THRESHOLD")

    # ── Retention ──
    retention_window_days: int = Field(default=7, alias="RETENTION_WINDOW_DAYS")
    retention_min_relevance: int = Field(default=60, alias="RETENTION_MIN_RELEVANCE")
    retention_limit: int = Field(default=20, alias="RETENTION_LIMIT")
    digest_capacity: int = Field(default=100, alias="DIGEST_CAPACITY")

    # Database
    database_url: str = Field(
        default="sqlite:///./regional_news.db",
        alias="DATABASE_URL"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    def api_key_for(self, provider: str) -> str:
        """Return the configured API key for a provider name ('' if unset)."""
        return {
            "newsdata": self.newsdata_api_key,
            "newsapi": self.newsapi_key,
            "gnews": self.gnews_api_key,
        }.get(provider, "")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# ═══════════════════════════════════════════════════════════════════════════
# PROVIDERS - External news APIs
# ═══════════════════════════════════════════════════════════════════════════

PROVIDERS = {
    "newsdata": {
        "id": "newsdata",
        "name": "NewsData.io",
        "base_url": "https://newsdata.io/api/1",
        "key_param": "apikey",
        "max_page_size": 50,
        "calls_per_window": 5,
        "daily_limit": 200,
    },
    "newsapi": {
        "id": "newsapi",
        "name": "NewsAPI.org",
        "base_url": "https://newsapi.org/v2",
        "key_param": "apiKey",
        "max_page_size": 20,
        "calls_per_window": 5,
        "daily_limit": 100,
    },
    "gnews": {
        "id": "gnews",
        "name": "GNews",
        "base_url": "https://gnews.io/api/v4",
        "key_param": "apikey",
        "max_page_size": 10,
        "calls_per_window": 5,
        "daily_limit": 100,
    },
}


# ═══════════════════════════════════════════════════════════════════════════
# PARTITIONS - Countries we aggregate for
# ═══════════════════════════════════════════════════════════════════════════

# newsapi does not serve China on top-headlines, hence no newsapi_country for CN.
PARTITIONS = {
    "KR": {
        "name": "South Korea",
        "search_names": ["South Korea", "Korea"],
        "newsdata_country": "kr",
        "newsapi_country": "kr",
        "domain_suffixes": [".kr"],
        "organizations": ["Samsung", "LG", "SK Hynix", "Naver", "Kakao"],
    },
    "JP": {
        "name": "Japan",
        "search_names": ["Japan", "Japanese"],
        "newsdata_country": "jp",
        "newsapi_country": "jp",
        "domain_suffixes": [".jp"],
        "organizations": ["Sony", "Nintendo", "Toyota", "SoftBank", "Honda"],
    },
    "CN": {
        "name": "China",
        "search_names": ["China", "Chinese"],
        "newsdata_country": "cn",
        "newsapi_country": None,
        "domain_suffixes": [".cn"],
        "organizations": ["Alibaba", "Tencent", "Baidu", "Huawei", "Xiaomi"],
    },
    "DE": {
        "name": "Germany",
        "search_names": ["Germany", "German"],
        "newsdata_country": "de",
        "newsapi_country": "de",
        "domain_suffixes": [".de"],
        "organizations": ["SAP", "Siemens", "BMW", "Mercedes", "Volkswagen"],
    },
    "FR": {
        "name": "France",
        "search_names": ["France", "French"],
        "newsdata_country": "fr",
        "newsapi_country": "fr",
        "domain_suffixes": [".fr"],
        "organizations": ["Dassault Systemes", "Orange", "Thales", "Capgemini", "Ubisoft"],
    },
    "GB": {
        "name": "United Kingdom",
        "search_names": ["United Kingdom", "Britain", "UK"],
        "newsdata_country": "gb",
        "newsapi_country": "gb",
        "domain_suffixes": [".co.uk", ".uk"],
        "organizations": ["ARM Holdings", "DeepMind", "Rolls-Royce", "Vodafone", "BT Group"],
    },
    "IN": {
        "name": "India",
        "search_names": ["India", "Indian"],
        "newsdata_country": "in",
        "newsapi_country": "in",
        "domain_suffixes": [".in"],
        "organizations": ["Infosys", "TCS", "Wipro", "Flipkart", "Paytm"],
    },
    "CA": {
        "name": "Canada",
        "search_names": ["Canada", "Canadian"],
        "newsdata_country": "ca",
        "newsapi_country": "ca",
        "domain_suffixes": [".ca"],
        "organizations": ["Shopify", "BlackBerry", "Bombardier", "Cohere", "Wealthsimple"],
    },
    "AU": {
        "name": "Australia",
        "search_names": ["Australia", "Australian"],
        "newsdata_country": "au",
        "newsapi_country": "au",
        "domain_suffixes": [".com.au", ".au"],
        "organizations": ["Atlassian", "Canva", "Afterpay", "Xero", "REA Group"],
    },
}

DEFAULT_PARTITIONS = list(PARTITIONS.keys())

# Every known regional suffix. Bonus applies when the item's domain ends with one.
REGIONAL_DOMAIN_SUFFIXES = sorted(
    {s for cfg in PARTITIONS.values() for s in cfg["domain_suffixes"]},
    key=len,
    reverse=True,
)


# Seed keyword weights per partition: (keyword, kind, weight)
DEFAULT_KEYWORDS = {
    "KR": [
        ("Samsung", "company", 10), ("LG", "company", 9), ("SK Hynix", "company", 8),
        ("Naver", "company", 7), ("Kakao", "company", 7), ("Seoul", "city", 6),
        ("Korean tech", "technology", 8), ("K-tech", "technology", 6),
        ("Korean AI", "technology", 8), ("Korean startup", "business", 5),
    ],
    "JP": [
        ("Sony", "company", 10), ("Nintendo", "company", 9), ("Toyota", "company", 8),
        ("SoftBank", "company", 8), ("Rakuten", "company", 7), ("Tokyo", "city", 6),
        ("Japanese tech", "technology", 8), ("Japanese AI", "technology", 8),
        ("robotics Japan", "technology", 7),
    ],
    "CN": [
        ("Alibaba", "company", 10), ("Tencent", "company", 10), ("Baidu", "company", 9),
        ("Huawei", "company", 9), ("Xiaomi", "company", 8), ("ByteDance", "company", 8),
        ("Beijing", "city", 6), ("Shanghai", "city", 6),
        ("Chinese tech", "technology", 8), ("Chinese AI", "technology", 8),
    ],
    "DE": [
        ("SAP", "company", 10), ("Siemens", "company", 9), ("BMW", "company", 8),
        ("Mercedes", "company", 8), ("Berlin", "city", 6), ("Munich", "city", 5),
        ("German tech", "technology", 8), ("German AI", "technology", 7),
    ],
    "FR": [
        ("Dassault", "company", 8), ("Thales", "company", 8), ("Orange", "company", 7),
        ("Capgemini", "company", 7), ("Paris", "city", 6),
        ("French tech", "technology", 8), ("French AI", "technology", 7),
    ],
    "GB": [
        ("ARM", "company", 9), ("DeepMind", "company", 9), ("Rolls-Royce", "company", 8),
        ("London", "city", 6), ("Cambridge", "city", 5),
        ("British tech", "technology", 8), ("UK tech", "technology", 8),
    ],
    "IN": [
        ("Infosys", "company", 10), ("TCS", "company", 9), ("Wipro", "company", 8),
        ("Flipkart", "company", 8), ("Bangalore", "city", 6), ("Mumbai", "city", 6),
        ("Indian tech", "technology", 8), ("Indian startup", "business", 5),
    ],
    "CA": [
        ("Shopify", "company", 10), ("BlackBerry", "company", 7), ("Cohere", "company", 8),
        ("Toronto", "city", 6), ("Montreal", "city", 5),
        ("Canadian tech", "technology", 8),
    ],
    "AU": [
        ("Atlassian", "company", 10), ("Canva", "company", 9), ("Afterpay", "company", 7),
        ("Sydney", "city", 6), ("Melbourne", "city", 5),
        ("Australian tech", "technology", 8),
    ],
}


# Topical terms: each hit adds topical_term_increment to the base score
TOPICAL_TERMS = [
    "ai", "artificial intelligence", "machine learning", "technology",
    "innovation", "startup",
]

# Reputable outlets get an analysis-score bump
REPUTABLE_SOURCES = ["techcrunch", "reuters", "bloomberg", "venturebeat", "wired"]

# Category classification, checked in order; first hit wins
CATEGORY_KEYWORDS = {
    "ai": ["artificial intelligence", "machine learning", "openai", "llm", "gpt", " ai "],
    "startup": ["startup", "seed funding", "series a", "series b", "venture capital", "funding round"],
    "business": ["earnings", "revenue", "stock", "market", "acquisition", "merger", "ipo"],
}

# Rolling startup digest filter
STARTUP_KEYWORDS = [
    "startup", "startups", "entrepreneur", "entrepreneurship", "venture capital",
    "vc funding", "seed funding", "series a", "series b", "funding round",
    "unicorn", "tech startup", "co-founder", "raises", "raised", "valuation",
    "ipo", "acquisition", "acquired", "accelerator", "incubator",
]
