"""Tests for utils/ helpers, cache and rate limiting, and core/dedup.py."""

from types import SimpleNamespace
from unittest.mock import patch

from conftest import make_document
from core.dedup import deduplicate_documents
from utils import rate_limit
from utils.cache import TTLCache, get_cache_key
from utils.helpers import (
    contains_any,
    extract_keywords,
    html_to_text,
    normalize_url,
    query_terms,
    term_overlap,
    truncate,
)
from utils.rate_limit import check_rate_limit


class TestHelpers:
    def test_extract_keywords_ranks_by_frequency(self):
        text = "Docker builds fail. Docker caching helps builds. Docker layers."
        assert extract_keywords(text, limit=2) == ["docker", "builds"]

    def test_extract_keywords_drops_short_and_stopwords(self):
        assert extract_keywords("how to use the api for this") == []

    def test_query_terms_unique_in_order(self):
        assert query_terms("React deployment issues with React") == [
            "react",
            "deployment",
            "issues",
        ]

    def test_contains_any_matches_whole_words(self):
        assert contains_any("Fixing a React bug", ["bug"])
        assert not contains_any("debugging tips", ["bug"])
        assert contains_any("open a pull request please", ["pull request"])

    def test_html_to_text_keeps_code_blocks(self):
        html = "<p>Try this:</p><pre><code>npm run build</code></pre><p>Done</p>"
        text = html_to_text(html)
        assert "```\nnpm run build\n```" in text
        assert "<p>" not in text

    def test_html_to_text_empty(self):
        assert html_to_text(None) == ""

    def test_truncate(self):
        assert truncate("short", 10) == "short"
        assert truncate("a long sentence here", 6) == "a long..."

    def test_normalize_url(self):
        assert normalize_url("https://www.Example.com/path/") == "example.com/path"
        assert normalize_url("http://example.com/path?q=1") == "example.com/path?q=1"
        assert normalize_url(None) is None

    def test_term_overlap(self):
        assert term_overlap(["react", "vite"], "React with webpack") == 0.5
        assert term_overlap([], "anything") == 0.0


class TestTTLCache:
    def test_get_set_and_stats(self):
        cache = TTLCache(ttl_seconds=60)
        assert cache.get("k") is None
        cache.set("k", "v")
        assert cache.get("k") == "v"
        assert cache.stats()["hits"] == 1
        assert cache.stats()["misses"] == 1

    def test_expired_entries_are_dropped(self):
        cache = TTLCache(ttl_seconds=10)
        with patch("utils.cache.time.time", return_value=1000.0):
            cache.set("k", "v")
        with patch("utils.cache.time.time", return_value=1011.0):
            assert cache.get("k") is None
        assert len(cache) == 0

    def test_full_cache_evicts_soonest_expiry(self):
        cache = TTLCache(ttl_seconds=100, max_entries=2)
        cache.set("short", 1, ttl_seconds=5)
        cache.set("long", 2, ttl_seconds=500)
        cache.set("new", 3)
        assert cache.get("short") is None
        assert cache.get("long") == 2
        assert cache.get("new") == 3

    def test_cache_key_ignores_param_order(self):
        assert get_cache_key("ns", a=1, b=2) == get_cache_key("ns", b=2, a=1)
        assert get_cache_key("ns", a=1) != get_cache_key("other", a=1)


def test_rate_limit_window():
    for _ in range(3):
        assert check_rate_limit("tool:user", max_calls=3, window=60)
    assert not check_rate_limit("tool:user", max_calls=3, window=60)
    assert check_rate_limit("tool:other", max_calls=3, window=60)


class TestDeduplicate:
    def test_same_url_keeps_most_relevant(self):
        low = make_document("a", url="https://www.example.com/page/", relevance=0.2)
        high = make_document("b", source="websearch", url="https://example.com/page", relevance=0.9)
        result = deduplicate_documents([low, high])
        assert [d.id for d in result] == ["b"]

    def test_title_fallback_without_url(self):
        first = make_document("a", title="Build fails!", url="")
        second = make_document("b", title="build fails", url="")
        assert len(deduplicate_documents([first, second])) == 1

    def test_preserves_first_appearance_order(self):
        docs = [make_document(str(i)) for i in range(3)]
        assert [d.id for d in deduplicate_documents(docs)] == ["0", "1", "2"]


def test_rate_limit_forgets_idle_keys(monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr(rate_limit, "time", SimpleNamespace(time=lambda: clock[0]))

    assert check_rate_limit("research_brief:user-1", max_calls=3, window=60)
    assert check_rate_limit("research_brief:user-2", max_calls=3, window=600)
    assert set(rate_limit._rate_limit_tracker) == {
        "research_brief:user-1",
        "research_brief:user-2",
    }

    clock[0] += 120
    assert check_rate_limit("research_brief:user-3", max_calls=3, window=60)
    assert set(rate_limit._rate_limit_tracker) == {
        "research_brief:user-2",
        "research_brief:user-3",
    }
