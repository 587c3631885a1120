"""Notion API integration for report pages."""

import logging
from typing import Any, Dict, List

import httpx

DEFAULT_TIMEOUT = 30.0
BASE_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
MAX_BLOCKS_PER_REQUEST = 100  # Notion rejects larger children arrays

logger = logging.getLogger(__name__)


def _headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Notion-Version": NOTION_VERSION,
        "Content-Type": "application/json",
    }


async def create_page(
    token: str, database_id: str, properties: Dict[str, Any]
) -> Dict[str, Any]:
    """Create a page in a database and return the page object."""
    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
        response = await client.post(
            f"{BASE_URL}/pages",
            headers=_headers(token),
            json={"parent": {"database_id": database_id}, "properties": properties},
        )
        response.raise_for_status()
        return response.json()


async def append_blocks(token: str, block_id: str, blocks: List[Dict[str, Any]]) -> int:
    """Append children to a page in batches; returns the number of requests made."""
    requests = 0
    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
        for start in range(0, len(blocks), MAX_BLOCKS_PER_REQUEST):
            batch = blocks[start : start + MAX_BLOCKS_PER_REQUEST]
            response = await client.patch(
                f"{BASE_URL}/blocks/{block_id}/children",
                headers=_headers(token),
                json={"children": batch},
            )
            response.raise_for_status()
            requests += 1
    logger.debug(f"Notion: appended {len(blocks)} blocks in {requests} request(s)")
    return requests
