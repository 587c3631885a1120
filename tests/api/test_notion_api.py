"""Unit tests for api/notion.py."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from api.notion import MAX_BLOCKS_PER_REQUEST, NOTION_VERSION, append_blocks, create_page


def _response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status = MagicMock()
    return response


@pytest.mark.asyncio
async def test_create_page_posts_parent_and_properties():
    with patch("httpx.AsyncClient") as mock_client:
        post = AsyncMock(return_value=_response({"id": "page-1", "url": "https://notion.so/page-1"}))
        mock_client.return_value.__aenter__.return_value.post = post
        page = await create_page("secret", "db-1", {"title": {"title": []}})

    assert page["id"] == "page-1"
    body = post.call_args.kwargs["json"]
    assert body["parent"] == {"database_id": "db-1"}
    headers = post.call_args.kwargs["headers"]
    assert headers["Authorization"] == "Bearer secret"
    assert headers["Notion-Version"] == NOTION_VERSION


@pytest.mark.asyncio
async def test_append_blocks_batches_children():
    blocks = [{"type": "paragraph"} for _ in range(MAX_BLOCKS_PER_REQUEST * 2 + 1)]
    with patch("httpx.AsyncClient") as mock_client:
        patch_call = AsyncMock(return_value=_response({}))
        mock_client.return_value.__aenter__.return_value.patch = patch_call
        requests = await append_blocks("secret", "page-1", blocks)

    assert requests == 3
    sizes = [len(call.kwargs["json"]["children"]) for call in patch_call.call_args_list]
    assert sizes == [100, 100, 1]
