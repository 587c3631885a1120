"""Unit tests for api/reddit.py."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from api import reddit
from api.reddit import fetch_comments, search_reddit


def _response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status = MagicMock()
    return response


PUBLIC_PAYLOAD = {
    "data": {
        "children": [
            {
                "data": {
                    "id": "abc",
                    "title": "Deploying React to Vercel",
                    "permalink": "/r/reactjs/comments/abc/deploying/",
                    "subreddit": "reactjs",
                    "score": 120,
                    "num_comments": 14,
                    "selftext": "We hit build errors",
                    "created_utc": 1700000000,
                }
            }
        ]
    }
}


@pytest.fixture
def no_credentials(monkeypatch):
    for name in ("REDDIT_CLIENT_ID", "REDDIT_CLIENT_SECRET", "REDDIT_REFRESH_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(reddit, "_reddit_client", None)


class TestPublicSearch:
    @pytest.mark.asyncio
    async def test_public_search_without_credentials(self, no_credentials):
        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(return_value=_response(PUBLIC_PAYLOAD))
            mock_client.return_value.__aenter__.return_value.get = get
            results = await search_reddit("react deployment", limit=10)

        assert len(results) == 1
        post = results[0]
        assert post["url"] == "https://www.reddit.com/r/reactjs/comments/abc/deploying/"
        assert post["comments"] == 14
        assert post["authenticated"] is False
        assert post["created"].startswith("2023-11-14")
        assert get.call_args.args[0] == "https://www.reddit.com/search.json"

    @pytest.mark.asyncio
    async def test_subreddit_restricts_search(self, no_credentials):
        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(return_value=_response({"data": {"children": []}}))
            mock_client.return_value.__aenter__.return_value.get = get
            await search_reddit("react", subreddit="reactjs")

        assert get.call_args.args[0] == "https://www.reddit.com/r/reactjs/search.json"
        assert get.call_args.kwargs["params"]["restrict_sr"] == "on"


class TestAuthenticatedSearch:
    @pytest.mark.asyncio
    async def test_authenticated_results_used_when_present(self):
        submission = SimpleNamespace(
            id36="xyz",
            title="Auth result",
            permalink="/r/python/comments/xyz/",
            subreddit_name="python",
            score=5,
            comment_count=2,
            body="",
            created_at=None,
        )

        async def fake_search(subreddit, query, amount, sort="relevance"):
            yield submission

        client = MagicMock()
        client.p.submission.search = fake_search
        with patch.object(reddit, "get_reddit_client", return_value=client):
            results = await search_reddit("python", limit=5)

        assert results[0]["id"] == "xyz"
        assert results[0]["authenticated"] is True

    @pytest.mark.asyncio
    async def test_falls_back_to_public_on_failure(self):
        async def failing_search(subreddit, query, amount, sort="relevance"):
            raise RuntimeError("oauth expired")
            yield  # pragma: no cover

        client = MagicMock()
        client.p.submission.search = failing_search
        with patch.object(reddit, "get_reddit_client", return_value=client), patch(
            "httpx.AsyncClient"
        ) as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=_response(PUBLIC_PAYLOAD)
            )
            results = await search_reddit("react")

        assert results[0]["authenticated"] is False


class TestFetchComments:
    @pytest.mark.asyncio
    async def test_only_top_level_comments(self):
        payload = [
            {"data": {}},
            {
                "data": {
                    "children": [
                        {"kind": "t1", "data": {"id": "c1", "body": "Set NODE_ENV", "score": 10}},
                        {"kind": "more", "data": {}},
                        {"kind": "t1", "data": {"id": "c2", "body": "Check logs", "score": 3}},
                    ]
                }
            },
        ]
        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(return_value=_response(payload))
            mock_client.return_value.__aenter__.return_value.get = get
            comments = await fetch_comments("https://www.reddit.com/r/x/comments/abc/", limit=5)

        assert [c["id"] for c in comments] == ["c1", "c2"]
        assert get.call_args.args[0] == "https://www.reddit.com/r/x/comments/abc.json"

    @pytest.mark.asyncio
    async def test_unexpected_shape_returns_empty(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=_response({"error": 404})
            )
            assert await fetch_comments("https://www.reddit.com/r/x/comments/abc") == []
