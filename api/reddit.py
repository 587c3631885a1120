"""
Reddit search.

Uses the authenticated redditwarp client when OAuth credentials are
configured, falling back to the public JSON search endpoint otherwise
(or when the authenticated search comes back empty or fails).
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

API_TIMEOUT = 30.0
USER_AGENT = "ResearchEngineMCP/2.0"

logger = logging.getLogger(__name__)

_reddit_client: Any = None


def has_credentials() -> bool:
    return all(
        os.getenv(name)
        for name in ("REDDIT_CLIENT_ID", "REDDIT_CLIENT_SECRET", "REDDIT_REFRESH_TOKEN")
    )


def get_reddit_client() -> Any:
    """Lazily build the authenticated redditwarp client, or None without credentials."""
    global _reddit_client
    if _reddit_client is None and has_credentials():
        from redditwarp.ASYNC import Client as RedditClient

        _reddit_client = RedditClient(
            os.getenv("REDDIT_CLIENT_ID"),
            os.getenv("REDDIT_CLIENT_SECRET"),
            os.getenv("REDDIT_REFRESH_TOKEN"),
        )
        logger.info("Reddit API client initialized with authentication.")
    return _reddit_client


async def close_reddit_client() -> None:
    global _reddit_client
    if _reddit_client is not None:
        try:
            await _reddit_client.close()
        except Exception as e:
            logger.warning(f"Failed to close Reddit client: {e}")
        _reddit_client = None


def _timestamp(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
    return None


async def _search_authenticated(
    client: Any, query: str, subreddit: str, limit: int
) -> List[Dict[str, Any]]:
    results = []
    async for submission in client.p.submission.search(
        subreddit, query, limit, sort="relevance"
    ):
        results.append(
            {
                "id": getattr(submission, "id36", ""),
                "title": submission.title,
                "url": f"https://www.reddit.com{submission.permalink}",
                "subreddit": getattr(submission, "subreddit_name", subreddit),
                "score": submission.score,
                "comments": submission.comment_count,
                "body": (getattr(submission, "body", "") or "")[:2000],
                "created": _timestamp(getattr(submission, "created_at", None)),
                "authenticated": True,
            }
        )
        if len(results) >= limit:
            break
    return results


async def _search_public(query: str, subreddit: str, limit: int) -> List[Dict[str, Any]]:
    if subreddit:
        url = f"https://www.reddit.com/r/{subreddit}/search.json"
        params = {"q": query, "sort": "relevance", "limit": limit, "restrict_sr": "on"}
    else:
        url = "https://www.reddit.com/search.json"
        params = {"q": query, "sort": "relevance", "limit": limit}

    async with httpx.AsyncClient(timeout=API_TIMEOUT) as client:
        response = await client.get(url, params=params, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
        data = response.json()

    results = []
    for item in data.get("data", {}).get("children", [])[:limit]:
        post = item.get("data", {})
        results.append(
            {
                "id": post.get("id", ""),
                "title": post.get("title", ""),
                "url": f"https://www.reddit.com{post.get('permalink', '')}",
                "subreddit": post.get("subreddit", ""),
                "score": post.get("score", 0),
                "comments": post.get("num_comments", 0),
                "body": (post.get("selftext") or "")[:2000],
                "created": _timestamp(post.get("created_utc")),
                "authenticated": False,
            }
        )
    return results


async def search_reddit(
    query: str, limit: int = 25, subreddit: str = ""
) -> List[Dict[str, Any]]:
    """Search Reddit posts, across all of Reddit unless a subreddit is given."""
    client = get_reddit_client()
    if client is not None:
        try:
            results = await _search_authenticated(client, query, subreddit, limit)
            if results:
                return results
            logger.info(
                "No results from authenticated Reddit API, falling back to public API"
            )
        except Exception as auth_error:
            logger.warning(
                f"Authenticated Reddit search failed: {auth_error}. Falling back to public API."
            )

    return await _search_public(query, subreddit, limit)


async def fetch_comments(permalink_url: str, limit: int = 5) -> List[Dict[str, Any]]:
    """Top-level comments of a post via the public JSON API."""
    url = permalink_url.rstrip("/") + ".json"
    async with httpx.AsyncClient(timeout=API_TIMEOUT) as client:
        response = await client.get(
            url,
            params={"limit": limit, "sort": "top", "depth": 1},
            headers={"User-Agent": USER_AGENT},
        )
        response.raise_for_status()
        data = response.json()

    if not isinstance(data, list) or len(data) < 2:
        return []

    comments = []
    for child in data[1].get("data", {}).get("children", []):
        if child.get("kind") != "t1":
            continue
        comment = child.get("data", {})
        comments.append(
            {
                "id": comment.get("id", ""),
                "body": comment.get("body", ""),
                "score": comment.get("score", 0),
                "author": comment.get("author", ""),
            }
        )
        if len(comments) >= limit:
            break
    return comments
