"""Stack Overflow search API integration."""

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

API_TIMEOUT = 30.0
BASE_URL = "https://api.stackexchange.com/2.3"

logger = logging.getLogger(__name__)

SO_LANGUAGE_TAGS = {
    "python": "python",
    "javascript": "javascript",
    "typescript": "typescript",
    "node": "node.js",
    "nodejs": "node.js",
    "react": "reactjs",
    "java": "java",
    "rust": "rust",
    "golang": "go",
    "ruby": "ruby",
    "php": "php",
    "sql": "sql",
    "docker": "docker",
    "kubernetes": "kubernetes",
}


class StackExchangeError(Exception):
    """The API answered 200 with an error payload."""

    def __init__(self, error_id: int, name: str, message: str):
        self.error_id = error_id
        self.name = name
        super().__init__(f"Stack Exchange error {error_id} ({name}): {message}")


def _get_api_key() -> Optional[str]:
    """Get Stack Exchange API key from environment (optional, raises quota)."""
    return os.getenv("STACKEXCHANGE_API_KEY") or None


def detect_tag(query: str) -> Optional[str]:
    """First known language or framework mentioned in the query, as a SO tag."""
    for word in query.lower().split():
        tag = SO_LANGUAGE_TAGS.get(word.strip(" ,.?!:;()"))
        if tag:
            return tag
    return None


async def _get(endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
    params = {**params, "site": "stackoverflow", "filter": "withbody"}
    api_key = _get_api_key()
    if api_key:
        params["key"] = api_key

    async with httpx.AsyncClient(timeout=API_TIMEOUT) as client:
        response = await client.get(f"{BASE_URL}{endpoint}", params=params)
        response.raise_for_status()
        data = response.json()

    if "error_id" in data:
        raise StackExchangeError(
            data.get("error_id", 0),
            data.get("error_name", "unknown"),
            data.get("error_message", "Unknown error"),
        )
    if data.get("quota_remaining") is not None and data["quota_remaining"] < 10:
        logger.warning(f"SO API quota low: {data['quota_remaining']} requests remaining")
    return data


async def search_questions(
    query: str, limit: int = 10, tag: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Search questions by relevance, bodies included as HTML."""
    params: Dict[str, Any] = {
        "order": "desc",
        "sort": "relevance",
        "q": query,
        "pagesize": min(max(limit, 1), 100),
    }
    if tag:
        params["tagged"] = tag

    data = await _get("/search/advanced", params)

    results = []
    for item in data.get("items", [])[:limit]:
        results.append(
            {
                "question_id": item.get("question_id"),
                "title": item.get("title", ""),
                "url": item.get("link", ""),
                "score": item.get("score", 0),
                "answer_count": item.get("answer_count", 0),
                "is_answered": item.get("is_answered", False),
                "accepted_answer_id": item.get("accepted_answer_id"),
                "view_count": item.get("view_count", 0),
                "tags": item.get("tags", []),
                "body": item.get("body", ""),
                "creation_date": item.get("creation_date"),
            }
        )

    logger.info(f"SO: Found {len(results)} questions for '{query}'")
    return results


async def fetch_answers(question_id: int, limit: int = 3) -> List[Dict[str, Any]]:
    """Top-voted answers for a question."""
    data = await _get(
        f"/questions/{question_id}/answers",
        {"order": "desc", "sort": "votes", "pagesize": min(max(limit, 1), 100)},
    )

    answers = []
    for item in data.get("items", [])[:limit]:
        answers.append(
            {
                "answer_id": item.get("answer_id"),
                "question_id": question_id,
                "score": item.get("score", 0),
                "is_accepted": item.get("is_accepted", False),
                "body": item.get("body", ""),
                "creation_date": item.get("creation_date"),
            }
        )
    return answers
