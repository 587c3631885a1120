"""Brave Search API integration."""

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

DEFAULT_TIMEOUT = 30.0
BASE_URL = "https://api.search.brave.com/res/v1"

logger = logging.getLogger(__name__)


def get_api_key() -> Optional[str]:
    return os.getenv("BRAVE_SEARCH_API_KEY") or None


async def search_brave(
    query: str,
    count: int = 10,
    freshness: Optional[str] = None,
    country: str = "us",
    search_lang: str = "en",
) -> List[Dict[str, Any]]:
    """Search Brave Web Search API.

    Args:
        query: Search query (max 400 chars, 50 words)
        count: Number of results (1-20, default 10)
        freshness: Filter by age - pd (24h), pw (week), pm (month), py (year)
        country: Country code for results (default: us)
        search_lang: Language code (default: en)

    Returns:
        List of normalized search results with title, url, snippet, and metadata.
        Empty when no API key is configured.
    """
    api_key = get_api_key()

    if not api_key:
        logger.debug("Brave Search skipped: BRAVE_SEARCH_API_KEY not set")
        return []

    params: Dict[str, Any] = {
        "q": query[:400],  # Max 400 chars
        "count": min(max(count, 1), 20),  # Clamp to 1-20
        "country": country,
        "search_lang": search_lang,
        "extra_snippets": "true",
    }

    if freshness:
        params["freshness"] = freshness

    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
        response = await client.get(
            f"{BASE_URL}/web/search",
            headers={
                "Accept": "application/json",
                "Accept-Encoding": "gzip",
                "X-Subscription-Token": api_key,
            },
            params=params,
        )
        response.raise_for_status()
        data = response.json()

    results: List[Dict[str, Any]] = []

    for item in data.get("web", {}).get("results", []):
        url = item.get("url")
        if not url:
            continue

        # Combine description with extra snippets if available
        snippet_parts = [item.get("description", "")]
        snippet_parts.extend(item.get("extra_snippets") or [])

        results.append(
            {
                "title": item.get("title", "Untitled"),
                "url": url,
                "snippet": " ".join(filter(None, snippet_parts)),
                "position": len(results) + 1,
                "date": item.get("age", ""),
                "source": "brave_web",
            }
        )

    return results
