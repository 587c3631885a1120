"""Serper (Google Search) API integration.

Organic results plus "People Also Ask" entries, normalised to
title / url / snippet dictionaries.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

DEFAULT_TIMEOUT = 30.0
BASE_URL = "https://google.serper.dev"

logger = logging.getLogger(__name__)


def get_api_key() -> Optional[str]:
    """Get Serper API key from environment (SERP_API_KEY accepted as an alias)."""
    return os.getenv("SERPER_API_KEY") or os.getenv("SERP_API_KEY") or None


async def search_serper(
    query: str,
    num_results: int = 10,
    country: str = "us",
    locale: str = "en",
) -> List[Dict[str, Any]]:
    """Search using Serper (Google Search API).

    Args:
        query: Search query
        num_results: Number of results (default 10, max 100)
        country: Country code for results (e.g., "us", "uk")
        locale: Language code (e.g., "en", "es")

    Returns:
        List of normalized search results with title, url, snippet, and metadata.
        Empty when no API key is configured.
    """
    api_key = get_api_key()

    if not api_key:
        logger.debug("Serper skipped: SERPER_API_KEY not set")
        return []

    payload: Dict[str, Any] = {
        "q": query.strip(),
        "num": min(max(num_results, 1), 100),
        "gl": country,
        "hl": locale,
        "autocorrect": True,
    }

    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
        response = await client.post(
            f"{BASE_URL}/search",
            headers={
                "X-API-KEY": api_key,
                "Content-Type": "application/json",
            },
            json=payload,
        )
        response.raise_for_status()
        data = response.json()

    results: List[Dict[str, Any]] = []

    for item in data.get("organic", []):
        url = item.get("link")
        if not url:
            continue

        results.append(
            {
                "title": item.get("title", "Untitled"),
                "url": url,
                "snippet": item.get("snippet", ""),
                "position": item.get("position", len(results) + 1),
                "date": item.get("date", ""),
                "source": "serper",
            }
        )

    for item in data.get("peopleAlsoAsk", []):
        if item.get("link"):
            results.append(
                {
                    "title": item.get("question", "Related Question"),
                    "url": item.get("link", ""),
                    "snippet": item.get("snippet", ""),
                    "position": len(results) + 1,
                    "source": "serper_people_also_ask",
                }
            )

    return results[:num_results]
