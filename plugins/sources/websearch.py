"""Web search source plugin (Serper, then Brave)."""

import hashlib
from typing import Any, Dict, List

from api import brave as brave_api
from api import serper as serper_api
from models.config import Depth
from models.research import Document
from plugins.base import BaseSourcePlugin
from plugins.types import PluginContext
from utils.helpers import html_to_text, query_terms, term_overlap

WEBSEARCH_CACHE_TTL = 7200  # 2 hours


class WebSearchPlugin(BaseSourcePlugin):
    id = "websearch"
    name = "Web Search"
    description = "Searches the web via Serper (Google) or Brave Search"
    cache_ttl = WEBSEARCH_CACHE_TTL
    depth_limits = {Depth.QUICK: 5, Depth.STANDARD: 10, Depth.DEEP: 20}

    def provider(self) -> str:
        if serper_api.get_api_key():
            return "serper"
        if brave_api.get_api_key():
            return "brave"
        return ""

    def is_available(self) -> bool:
        return bool(self.provider())

    def matches_query(self, query: str) -> bool:
        # General web results are relevant to any query
        return True

    async def do_search(self, context: PluginContext) -> List[Document]:
        limit = self.limit_for(context.depth)
        provider = self.provider()

        context.update_progress(10, f"Searching the web via {provider or 'no provider'}")
        if provider == "serper":
            results = await serper_api.search_serper(context.query, num_results=limit)
        elif provider == "brave":
            results = await brave_api.search_brave(context.query, count=limit)
        else:
            results = []

        terms = query_terms(context.query)
        documents = [
            self._result_document(r, terms, len(results), provider) for r in results
        ]
        context.update_progress(90, f"Web search: {len(documents)} results")
        return documents

    def _result_document(
        self, result: Dict[str, Any], terms: List[str], total: int, provider: str
    ) -> Document:
        title = html_to_text(result.get("title", ""))
        snippet = html_to_text(result.get("snippet", ""))
        position = result.get("position") or total
        # Search engine rank carries most of the signal
        rank = 1.0 - (position - 1) / max(total, 1)
        relevance = round(0.6 * max(rank, 0.0) + 0.4 * term_overlap(terms, f"{title} {snippet}"), 3)

        url = result.get("url", "")
        return self.make_document(
            hashlib.md5(url.encode()).hexdigest()[:12],
            title,
            snippet,
            url=url,
            relevance=relevance,
            timestamp=None,
            type="webpage",
            provider=provider,
            position=position,
            published=result.get("date") or None,
        )
