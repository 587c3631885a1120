"""Tests for the built-in source plugins with the api layer patched out."""

from unittest.mock import AsyncMock, patch

import pytest

from models.config import Depth
from plugins.sources import (
    BUILTIN_SOURCE_PLUGINS,
    GitHubPlugin,
    RedditPlugin,
    StackOverflowPlugin,
    WebSearchPlugin,
)
from plugins.types import PluginContext


def test_builtin_plugin_ids():
    assert [factory().id for factory in BUILTIN_SOURCE_PLUGINS] == [
        "github",
        "websearch",
        "reddit",
        "stackoverflow",
    ]


class TestGitHubPlugin:
    @pytest.mark.asyncio
    async def test_repositories_and_issues_become_documents(self):
        repos = [
            {
                "id": 1,
                "full_name": "vercel/next.js",
                "url": "https://github.com/vercel/next.js",
                "description": "React deployment framework",
                "stars": 120000,
                "topics": ["react"],
            }
        ]
        issues = [
            {
                "id": 7,
                "number": 42,
                "title": "React deployment fails",
                "body": "Deployment breaks after upgrade",
                "url": "https://github.com/acme/app/issues/42",
                "repository": "acme/app",
                "state": "closed",
                "comments": 4,
                "reactions": 10,
            }
        ]
        with patch("api.github.search_repositories", new=AsyncMock(return_value=repos)) as search_repos, \
                patch("api.github.search_issues", new=AsyncMock(return_value=issues)) as search_issues:
            plugin = GitHubPlugin(retry_delay=0)
            docs = await plugin.do_search(PluginContext(query="react deployment", depth=Depth.QUICK))

        assert search_repos.call_args.args == ("react deployment", 5)
        assert search_issues.call_args.args == ("react deployment", 5)
        repo_doc, issue_doc = docs
        assert repo_doc.id == "github-repo-1"
        assert repo_doc.metadata.model_extra["type"] == "repository"
        assert "Topics: react" in repo_doc.content
        assert issue_doc.title == "React deployment fails (acme/app#42)"
        assert 0.0 < issue_doc.relevance <= 1.0

    def test_keyword_predicate(self):
        plugin = GitHubPlugin()
        assert plugin.matches_query("best open source library for charts")
        assert not plugin.matches_query("debugging tips")


class TestRedditPlugin:
    @pytest.mark.asyncio
    async def test_top_posts_get_comments(self):
        posts = [
            {"id": "p1", "title": "Vercel vs Netlify", "body": "Thoughts?", "url": "https://reddit.com/p1", "score": 50, "comments": 20},
            {"id": "p2", "title": "Deploying React", "body": "", "url": "https://reddit.com/p2", "score": 5, "comments": 1},
        ]

        async def comments(url, limit):
            if url.endswith("p2"):
                raise RuntimeError("comments unavailable")
            return [{"body": "Use Vercel", "score": 12}]

        with patch("api.reddit.search_reddit", new=AsyncMock(return_value=posts)), \
                patch("api.reddit.fetch_comments", new=AsyncMock(side_effect=comments)):
            docs = await RedditPlugin().do_search(PluginContext(query="vercel vs netlify"))

        assert [d.id for d in docs] == ["reddit-p1", "reddit-p2"]
        assert "Top comments:" in docs[0].content
        assert "(12 points) Use Vercel" in docs[0].content
        assert "Top comments" not in docs[1].content
        assert docs[0].relevance > docs[1].relevance

    @pytest.mark.asyncio
    async def test_quick_depth_skips_comments(self):
        posts = [{"id": "p1", "title": "t", "url": "https://reddit.com/p1", "score": 50}]
        fetch = AsyncMock(return_value=[])
        with patch("api.reddit.search_reddit", new=AsyncMock(return_value=posts)), \
                patch("api.reddit.fetch_comments", new=fetch):
            await RedditPlugin().do_search(PluginContext(query="react", depth=Depth.QUICK))
        fetch.assert_not_called()


class TestStackOverflowPlugin:
    QUESTIONS = [
        {
            "question_id": 11,
            "title": "React build fails on deploy",
            "body": "<p>The <code>build</code> step fails</p>",
            "url": "https://stackoverflow.com/q/11",
            "score": 20,
            "answer_count": 2,
            "accepted_answer_id": 99,
            "creation_date": 1700000000,
        },
        {
            "question_id": 12,
            "title": "Unrelated question",
            "body": "",
            "url": "https://stackoverflow.com/q/12",
            "score": 1,
        },
    ]

    @pytest.mark.asyncio
    async def test_answers_fetched_for_good_questions(self):
        answers = [{"answer_id": 99, "body": "<p>Set NODE_ENV</p>", "score": 30, "is_accepted": True}]
        fetch = AsyncMock(return_value=answers)
        with patch("api.stackoverflow.search_questions", new=AsyncMock(return_value=self.QUESTIONS)), \
                patch("api.stackoverflow.fetch_answers", new=fetch):
            docs = await StackOverflowPlugin().do_search(PluginContext(query="react build fails"))

        assert fetch.call_count == 1
        assert fetch.call_args.args == (11, 3)
        assert [d.id for d in docs] == ["stackoverflow-q-11", "stackoverflow-q-12", "stackoverflow-a-99"]
        assert "<p>" not in docs[0].content
        assert docs[0].metadata.timestamp.startswith("2023-11-14")
        assert docs[2].title == "Accepted answer: React build fails on deploy"
        assert docs[2].url == "https://stackoverflow.com/a/99"

    @pytest.mark.asyncio
    async def test_answer_failures_keep_questions(self):
        with patch("api.stackoverflow.search_questions", new=AsyncMock(return_value=self.QUESTIONS)), \
                patch("api.stackoverflow.fetch_answers", new=AsyncMock(side_effect=RuntimeError("quota"))):
            docs = await StackOverflowPlugin().do_search(PluginContext(query="react"))
        assert len(docs) == 2


class TestWebSearchPlugin:
    def test_availability_follows_keys(self, monkeypatch):
        plugin = WebSearchPlugin()
        assert not plugin.is_available()
        monkeypatch.setenv("BRAVE_SEARCH_API_KEY", "brave-key")
        assert plugin.provider() == "brave"
        monkeypatch.setenv("SERPER_API_KEY", "serper-key")
        assert plugin.provider() == "serper"
        assert plugin.matches_query("anything at all")

    @pytest.mark.asyncio
    async def test_serper_results_ranked_by_position(self, monkeypatch):
        monkeypatch.setenv("SERPER_API_KEY", "serper-key")
        results = [
            {"title": "React deployment guide", "snippet": "How to deploy", "url": "https://a.example", "position": 1},
            {"title": "Other", "snippet": "", "url": "https://b.example", "position": 2},
        ]
        search = AsyncMock(return_value=results)
        with patch("api.serper.search_serper", new=search):
            docs = await WebSearchPlugin().do_search(PluginContext(query="react deployment"))

        assert search.call_args.kwargs["num_results"] == 10
        assert len(docs) == 2
        assert docs[0].id.startswith("websearch-")
        assert docs[0].relevance > docs[1].relevance
        assert docs[0].metadata.model_extra["provider"] == "serper"
