"""GitHub source plugin: repositories and issues."""

import math
from typing import Any, Dict, List

from api import github as github_api
from models.config import Depth
from models.research import Document
from plugins.base import BaseSourcePlugin
from plugins.types import PluginContext
from utils.helpers import query_terms, term_overlap, truncate


class GitHubPlugin(BaseSourcePlugin):
    id = "github"
    name = "GitHub"
    description = "Searches GitHub repositories and issues for code, libraries and known problems"
    keywords = (
        "github",
        "repository",
        "repositories",
        "repo",
        "repos",
        "issue",
        "issues",
        "pull request",
        "pr",
        "code",
        "library",
        "framework",
        "open source",
        "bug",
    )
    depth_limits = {Depth.QUICK: 10, Depth.STANDARD: 20, Depth.DEEP: 30}

    async def do_search(self, context: PluginContext) -> List[Document]:
        limit = self.limit_for(context.depth)
        repo_limit = max(limit // 2, 1)
        issue_limit = max(limit - repo_limit, 1)
        terms = query_terms(context.query)

        context.update_progress(10, "Searching GitHub repositories")
        repos = await github_api.search_repositories(context.query, repo_limit)

        context.update_progress(50, "Searching GitHub issues")
        issues = await github_api.search_issues(context.query, issue_limit)

        documents = [self._repo_document(repo, terms) for repo in repos]
        documents += [self._issue_document(issue, terms) for issue in issues]
        context.update_progress(90, f"GitHub: {len(documents)} results")
        return documents

    def _repo_document(self, repo: Dict[str, Any], terms: List[str]) -> Document:
        topics = ", ".join(repo.get("topics") or [])
        content_parts = [repo.get("description") or ""]
        if topics:
            content_parts.append(f"Topics: {topics}")
        content_parts.append(
            f"Stars: {repo.get('stars', 0)}, forks: {repo.get('forks', 0)}, "
            f"language: {repo.get('language') or 'unknown'}"
        )

        # Popularity saturates around 100k stars
        popularity = min(math.log10(repo.get("stars", 0) + 1) / 5, 1.0)
        overlap = term_overlap(terms, f"{repo.get('full_name', '')} {repo.get('description') or ''} {topics}")
        relevance = round(0.5 * popularity + 0.5 * overlap, 3)

        return self.make_document(
            f"repo-{repo.get('id')}",
            repo.get("full_name", ""),
            "\n".join(content_parts),
            url=repo.get("url"),
            relevance=relevance,
            timestamp=repo.get("updated_at"),
            type="repository",
            stars=repo.get("stars", 0),
            language=repo.get("language"),
        )

    def _issue_document(self, issue: Dict[str, Any], terms: List[str]) -> Document:
        engagement = min(
            math.log10(issue.get("reactions", 0) + issue.get("comments", 0) + 1) / 3, 1.0
        )
        overlap = term_overlap(terms, f"{issue.get('title', '')} {issue.get('body', '')}")
        resolved = 0.1 if issue.get("state") == "closed" else 0.0
        relevance = round(min(0.4 * engagement + 0.5 * overlap + resolved, 1.0), 3)

        repository = issue.get("repository", "")
        title = issue.get("title", "")
        if repository:
            title = f"{title} ({repository}#{issue.get('number')})"

        return self.make_document(
            f"issue-{issue.get('id')}",
            title,
            truncate(issue.get("body", ""), 2000),
            url=issue.get("url"),
            relevance=relevance,
            timestamp=issue.get("created_at"),
            type="issue",
            state=issue.get("state"),
            comments=issue.get("comments", 0),
            labels=issue.get("labels", []),
        )
