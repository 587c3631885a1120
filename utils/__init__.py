"""
Utility functions for caching, rate limiting, and text helpers.
"""

from utils.cache import CACHE_TTL_SECONDS, TTLCache, get_cache_key
from utils.helpers import (
    contains_any,
    extract_keywords,
    html_to_text,
    normalize_query,
    normalize_url,
    query_terms,
    term_overlap,
    truncate,
)
from utils.rate_limit import (
    RATE_LIMIT_MAX_CALLS,
    RATE_LIMIT_WINDOW,
    check_rate_limit,
    reset_rate_limits,
)

__all__ = [
    # Cache
    "TTLCache",
    "get_cache_key",
    "CACHE_TTL_SECONDS",
    # Rate limiting
    "check_rate_limit",
    "reset_rate_limits",
    "RATE_LIMIT_WINDOW",
    "RATE_LIMIT_MAX_CALLS",
    # Helpers
    "contains_any",
    "extract_keywords",
    "html_to_text",
    "normalize_query",
    "normalize_url",
    "query_terms",
    "term_overlap",
    "truncate",
]
