import pytest

from regional_news.config import Settings
from regional_news.tools import extract_domain, matches_regional_suffix, normalize_url


@pytest.mark.parametrize("url,expected", [
    ("HTTPS://WWW.Example.com/a/?utm_source=x", "https://example.com/a"),
    ("example.com/story#top", "https://example.com/story"),
    ("https://example.com/a?b=2&a=1", "https://example.com/a?a=1&b=2"),
    ("http://example.com:8080/x/", "http://example.com:8080/x"),
    ("", ""),
])
def test_normalize_url(url, expected):
    assert normalize_url(url) == expected


def test_extract_domain():
    assert extract_domain("https://www.koreaherald.co.kr/view") == "koreaherald.co.kr"
    assert extract_domain("https://news.bbc.co.uk/x") == "news.bbc.co.uk"
    assert extract_domain("not a url") is None


def test_matches_regional_suffix():
    assert matches_regional_suffix("https://www.asahi.jp/story")
    assert matches_regional_suffix("https://abc.net.au/news", [".au"])
    assert matches_regional_suffix("https://www.koreaherald.co.kr/view", [".kr"])
    assert not matches_regional_suffix("https://techcrunch.com/x")
    assert not matches_regional_suffix("https://news.example.jp/x", [".kr"])


def test_regional_label_outside_public_suffix_does_not_match():
    assert not matches_regional_suffix("https://evil.kr.example.com/x", [".kr"])
    assert not matches_regional_suffix("https://jp.reuters.com/x")


def test_settings_api_key_lookup():
    settings = Settings(newsdata_api_key="nd", newsapi_key="na", gnews_api_key="")
    assert settings.api_key_for("newsdata") == "nd"
    assert settings.api_key_for("newsapi") == "na"
    assert settings.api_key_for("gnews") == ""
    assert settings.api_key_for("unknown") == ""
