"""Reddit source plugin: community discussion posts."""

import logging
import math
from typing import Any, Dict, List

from api import reddit as reddit_api
from models.config import Depth
from models.research import Document
from plugins.base import BaseSourcePlugin
from plugins.types import PluginContext
from utils.helpers import query_terms, term_overlap, truncate

logger = logging.getLogger(__name__)

# Top posts whose comments are pulled in as extra context
COMMENT_POST_LIMITS = {Depth.QUICK: 0, Depth.STANDARD: 3, Depth.DEEP: 5}
COMMENTS_PER_POST = 3


class RedditPlugin(BaseSourcePlugin):
    id = "reddit"
    name = "Reddit"
    description = "Searches Reddit for community discussions, opinions and experiences"
    keywords = (
        "reddit",
        "subreddit",
        "/r/",
        "community",
        "opinion",
        "opinions",
        "experience",
        "experiences",
        "recommend",
        "recommendation",
        "vs",
        "versus",
        "thoughts",
        "discussion",
    )
    depth_limits = {Depth.QUICK: 10, Depth.STANDARD: 25, Depth.DEEP: 50}

    async def do_search(self, context: PluginContext) -> List[Document]:
        limit = self.limit_for(context.depth)
        terms = query_terms(context.query)
        subreddit = str(context.config.get("subreddit", ""))

        context.update_progress(10, "Searching Reddit")
        posts = await reddit_api.search_reddit(context.query, limit, subreddit=subreddit)
        context.update_progress(50, f"Reddit: {len(posts)} posts")

        top_posts = sorted(posts, key=lambda p: p.get("score", 0), reverse=True)
        comment_limit = COMMENT_POST_LIMITS.get(context.depth, 0)
        comments_by_post: Dict[str, List[Dict[str, Any]]] = {}
        for post in top_posts[:comment_limit]:
            try:
                comments_by_post[post["url"]] = await reddit_api.fetch_comments(
                    post["url"], COMMENTS_PER_POST
                )
            except Exception as e:
                logger.warning(f"Reddit comments for {post['url']} failed: {e}")

        documents = [
            self._post_document(post, terms, comments_by_post.get(post["url"], []))
            for post in posts
        ]
        context.update_progress(90, f"Reddit: {len(documents)} results")
        return documents

    def _post_document(
        self, post: Dict[str, Any], terms: List[str], comments: List[Dict[str, Any]]
    ) -> Document:
        votes = min(math.log10(max(post.get("score", 0), 0) + 1) / 4, 1.0)
        discussion = min(math.log10(post.get("comments", 0) + 1) / 3, 1.0)
        overlap = term_overlap(terms, f"{post.get('title', '')} {post.get('body', '')}")
        relevance = round(0.3 * votes + 0.2 * discussion + 0.5 * overlap, 3)

        content = post.get("body", "")
        if comments:
            rendered = "\n".join(
                f"- ({c.get('score', 0)} points) {truncate(c.get('body', ''), 400)}"
                for c in comments
            )
            content = f"{content}\n\nTop comments:\n{rendered}".strip()

        return self.make_document(
            post.get("id") or post.get("url", ""),
            post.get("title", ""),
            truncate(content, 3000),
            url=post.get("url"),
            relevance=relevance,
            timestamp=post.get("created"),
            type="post",
            subreddit=post.get("subreddit", ""),
            score=post.get("score", 0),
            comments=post.get("comments", 0),
        )
