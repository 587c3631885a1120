"""Built-in source plugins."""

from plugins.sources.github import GitHubPlugin
from plugins.sources.reddit import RedditPlugin
from plugins.sources.stackoverflow import StackOverflowPlugin
from plugins.sources.websearch import WebSearchPlugin

__all__ = [
    "GitHubPlugin",
    "RedditPlugin",
    "StackOverflowPlugin",
    "WebSearchPlugin",
    "BUILTIN_SOURCE_PLUGINS",
]

BUILTIN_SOURCE_PLUGINS = [
    GitHubPlugin,
    WebSearchPlugin,
    RedditPlugin,
    StackOverflowPlugin,
]
