"""Unit tests for api/serper.py and api/brave.py."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from api.brave import search_brave
from api.serper import get_api_key, search_serper


def _response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status = MagicMock()
    return response


class TestSerper:
    def test_serp_api_key_alias(self, monkeypatch):
        monkeypatch.setenv("SERP_API_KEY", "alias")
        assert get_api_key() == "alias"

    @pytest.mark.asyncio
    async def test_without_api_key_returns_empty(self):
        with patch("httpx.AsyncClient") as mock_client:
            assert await search_serper("react") == []
        mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_organic_and_people_also_ask(self, monkeypatch):
        monkeypatch.setenv("SERPER_API_KEY", "serper_key")
        payload = {
            "organic": [
                {"title": "Deploy React", "link": "https://a.example", "snippet": "steps", "position": 1},
                {"title": "No link"},
            ],
            "peopleAlsoAsk": [
                {"question": "Why does my build fail?", "link": "https://b.example", "snippet": "env"},
            ],
        }
        with patch("httpx.AsyncClient") as mock_client:
            post = AsyncMock(return_value=_response(payload))
            mock_client.return_value.__aenter__.return_value.post = post
            results = await search_serper("react deploy", num_results=10)

        assert [r["url"] for r in results] == ["https://a.example", "https://b.example"]
        assert results[1]["source"] == "serper_people_also_ask"
        assert post.call_args.kwargs["headers"]["X-API-KEY"] == "serper_key"
        assert post.call_args.kwargs["json"]["q"] == "react deploy"


class TestBrave:
    @pytest.mark.asyncio
    async def test_without_api_key_returns_empty(self):
        assert await search_brave("react") == []

    @pytest.mark.asyncio
    async def test_combines_extra_snippets(self, monkeypatch):
        monkeypatch.setenv("BRAVE_SEARCH_API_KEY", "brave_key")
        payload = {
            "web": {
                "results": [
                    {
                        "title": "React docs",
                        "url": "https://react.dev",
                        "description": "Official docs.",
                        "extra_snippets": ["Deployment guide."],
                    }
                ]
            }
        }
        with patch("httpx.AsyncClient") as mock_client:
            get = AsyncMock(return_value=_response(payload))
            mock_client.return_value.__aenter__.return_value.get = get
            results = await search_brave("react", count=50)

        assert results[0]["snippet"] == "Official docs. Deployment guide."
        assert get.call_args.kwargs["params"]["count"] == 20
        assert get.call_args.kwargs["headers"]["X-Subscription-Token"] == "brave_key"
