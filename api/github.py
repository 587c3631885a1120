"""
GitHub repository and issue search.

Thin httpx wrappers over the GitHub REST search endpoints. HTTP errors
propagate so the calling plugin can classify them (403 with an exhausted
quota and 429 are rate limits, 422 is a query GitHub refused).
"""

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

API_TIMEOUT = 30.0
BASE_URL = "https://api.github.com"
MAX_QUERY_LENGTH = 256

logger = logging.getLogger(__name__)

QUERY_STOPWORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "how", "what", "where", "when", "why",
    "solution", "fix", "help", "example", "best", "way", "ways",
}


def _get_token() -> Optional[str]:
    """Get GitHub token from environment."""
    return os.getenv("GITHUB_TOKEN") or None


def _headers() -> Dict[str, str]:
    headers = {
        "Accept": "application/vnd.github+json",
        "User-Agent": "ResearchEngineMCP/2.0",
        "X-GitHub-Api-Version": "2022-11-28",
    }
    token = _get_token()
    if token:
        headers["Authorization"] = f"token {token}"
    return headers


def _simplify_github_query(
    query: str, qualifiers: str = "", max_length: int = MAX_QUERY_LENGTH
) -> str:
    """
    Simplify and truncate a GitHub search query to avoid 422 errors.

    GitHub rejects search queries over 256 characters. Common words are
    dropped, technical terms and version numbers kept, and words appended
    until the limit (minus the qualifiers) is reached.

    Args:
        query: The original search query
        qualifiers: Search qualifiers appended verbatim (e.g. "is:issue")
        max_length: Maximum query length (default 256 chars)

    Returns:
        Simplified query string
    """
    remaining = max_length - len(qualifiers) - 1  # -1 for space
    if remaining <= 0:
        return qualifiers

    important_words = []
    for word in query.split():
        clean_word = word.strip(" ,.;:!?\"'()").lower()
        if not clean_word:
            continue
        if (
            (len(clean_word) > 2 and clean_word not in QUERY_STOPWORDS)
            or any(c.isdigit() for c in clean_word)
            or word[0].isupper()
        ):
            important_words.append(word.strip(" ,.;:!?\"'()"))

    if not important_words:
        important_words = query.split()

    simplified_query = ""
    for word in important_words[:10]:
        test_query = f"{simplified_query} {word}".strip()
        if len(test_query) <= remaining:
            simplified_query = test_query
        else:
            break

    return f"{simplified_query} {qualifiers}".strip()


async def _search(endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
    async with httpx.AsyncClient(timeout=API_TIMEOUT) as client:
        response = await client.get(
            f"{BASE_URL}{endpoint}", params=params, headers=_headers()
        )
        response.raise_for_status()
        return response.json()


async def search_repositories(query: str, limit: int = 10) -> List[Dict[str, Any]]:
    """Search repositories sorted by stars."""
    params = {
        "q": _simplify_github_query(query),
        "sort": "stars",
        "order": "desc",
        "per_page": min(max(limit, 1), 100),
    }
    data = await _search("/search/repositories", params)

    results = []
    for item in data.get("items", [])[:limit]:
        results.append(
            {
                "id": item.get("id"),
                "full_name": item.get("full_name", ""),
                "url": item.get("html_url", ""),
                "description": item.get("description") or "",
                "stars": item.get("stargazers_count", 0),
                "forks": item.get("forks_count", 0),
                "language": item.get("language"),
                "topics": item.get("topics") or [],
                "updated_at": item.get("updated_at"),
            }
        )
    logger.debug(f"GitHub: {len(results)} repositories for '{query}'")
    return results


async def search_issues(query: str, limit: int = 10) -> List[Dict[str, Any]]:
    """Search issues and pull requests sorted by reactions."""
    params = {
        "q": _simplify_github_query(query, "is:issue"),
        "sort": "reactions",
        "order": "desc",
        "per_page": min(max(limit, 1), 100),
    }
    data = await _search("/search/issues", params)

    results = []
    for item in data.get("items", [])[:limit]:
        repo_url = item.get("repository_url", "")
        results.append(
            {
                "id": item.get("id"),
                "number": item.get("number"),
                "title": item.get("title", ""),
                "url": item.get("html_url", ""),
                "state": item.get("state", ""),
                "comments": item.get("comments", 0),
                "reactions": (item.get("reactions") or {}).get("total_count", 0),
                "repository": repo_url.split("/repos/")[-1] if repo_url else "",
                "labels": [label.get("name", "") for label in item.get("labels") or []],
                "body": (item.get("body") or "")[:2000],
                "created_at": item.get("created_at"),
            }
        )
    logger.debug(f"GitHub: {len(results)} issues for '{query}'")
    return results
