"""
External API clients used by the source and export plugins.

Every function is async, talks to one service over httpx and returns
plain dictionaries. HTTP failures are raised (not swallowed) so the
calling plugin can classify them; a missing optional API key yields an
empty result instead.

Available Clients:
─────────────────────────────────────────────────────────────────────────────
SOURCES
    github           Repository and issue search (GITHUB_TOKEN optional)
    stackoverflow    Stack Exchange questions and answers
    reddit           redditwarp (OAuth) or public JSON search
    serper           Google Search via Serper.dev (SERPER_API_KEY)
    brave            Brave Search (BRAVE_SEARCH_API_KEY)

EXPORT TARGETS
    notion           Page creation and block append
"""

from api.brave import search_brave
from api.github import search_issues as search_github_issues
from api.github import search_repositories as search_github_repositories
from api.notion import append_blocks as append_notion_blocks
from api.notion import create_page as create_notion_page
from api.reddit import fetch_comments as fetch_reddit_comments
from api.reddit import search_reddit
from api.serper import search_serper
from api.stackoverflow import fetch_answers as fetch_stackoverflow_answers
from api.stackoverflow import search_questions as search_stackoverflow

__all__ = [
    # GitHub
    "search_github_repositories",
    "search_github_issues",
    # Stack Overflow
    "search_stackoverflow",
    "fetch_stackoverflow_answers",
    # Reddit
    "search_reddit",
    "fetch_reddit_comments",
    # Web search
    "search_serper",
    "search_brave",
    # Notion
    "create_notion_page",
    "append_notion_blocks",
]
