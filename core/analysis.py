"""
Research analysis.

Turns the documents collected for a query into an AnalysisResult. With an
LLM provider configured the documents are packed into a prompt and the
model's JSON answer is parsed into the fixed result shape; without one a
deterministic template analysis is produced from the documents themselves.
"""

import json
import logging
import time
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.errors import AnalysisError
from core.llm_clients import call_llm, get_available_llm_provider
from models.config import SOURCE_LABELS, Depth
from models.research import (
    AnalysisMetadata,
    AnalysisResult,
    Document,
    Evidence,
    Importance,
    Insight,
)
from utils.cache import TTLCache, get_cache_key
from utils.helpers import extract_keywords, truncate

__all__ = ["Analyzer", "DEPTH_SETTINGS", "compute_confidence", "select_sources"]

logger = logging.getLogger(__name__)

ANALYSIS_CACHE_TTL = 3600
MAX_SOURCES = 10
EXCERPT_LENGTH = 200
DOCUMENT_CONTENT_LIMIT = 2000

# Prompt budgets are approximated in characters (about 4 per token)
DEPTH_SETTINGS: Dict[Depth, Dict[str, Any]] = {
    Depth.QUICK: {"model": "gpt-4o-mini", "max_tokens": 2000, "char_budget": 8000},
    Depth.STANDARD: {"model": "gpt-4o-mini", "max_tokens": 4000, "char_budget": 24000},
    Depth.DEEP: {"model": "gpt-4o", "max_tokens": 4000, "char_budget": 48000},
}

SYSTEM_PROMPT = """You are a research analyst. You receive a research query and a set of
documents collected from GitHub, Stack Overflow, Reddit and the web.
Identify the key insights, patterns and recommendations they support.

Respond with a JSON object of exactly this shape:
{
  "summary": "2-3 paragraph executive summary",
  "insights": [
    {
      "category": "short category name",
      "title": "insight title",
      "description": "what the documents show",
      "importance": "high" | "medium" | "low",
      "evidence": ["document id", "..."]
    }
  ],
  "recommendations": ["actionable recommendation", "..."],
  "citations": ["document id", "..."]
}

Only cite document ids that appear in the input."""


def _excerpt(document: Document) -> str:
    return truncate(document.content.strip(), EXCERPT_LENGTH) if document.content else document.title


def select_sources(
    documents: Sequence[Document], cited_ids: Sequence[str], limit: int = MAX_SOURCES
) -> List[Document]:
    """Cited documents first (in citation order), then the most relevant rest."""
    by_id = {d.id: d for d in documents}
    selected: "OrderedDict[str, Document]" = OrderedDict()
    for doc_id in cited_ids:
        if doc_id in by_id and doc_id not in selected:
            selected[doc_id] = by_id[doc_id]
    for document in sorted(documents, key=lambda d: d.relevance, reverse=True):
        if len(selected) >= limit:
            break
        selected.setdefault(document.id, document)
    return list(selected.values())[:limit]


def compute_confidence(
    documents: Sequence[Document], insights: Sequence[Insight], cited_ids: Sequence[str]
) -> float:
    """
    Heuristic confidence in 0..1.

    30% volume (saturating at 10 documents), 20% source diversity
    (saturating at 5 sources), 30% for having insights, 20% for citations.
    """
    volume = min(len(documents) / 10, 1.0) * 0.3
    diversity = min(len({d.source for d in documents}) / 5, 1.0) * 0.2
    has_insights = 0.3 if insights else 0.0
    has_citations = 0.2 if cited_ids else 0.0
    return round(min(volume + diversity + has_insights + has_citations, 1.0), 3)


class Analyzer:
    def __init__(self, cache: Optional[TTLCache] = None, use_llm: bool = True):
        self.cache = cache if cache is not None else TTLCache(ttl_seconds=ANALYSIS_CACHE_TTL)
        self.use_llm = use_llm

    async def analyze(
        self, documents: List[Document], query: str, depth: Depth = Depth.STANDARD
    ) -> AnalysisResult:
        if not documents:
            raise AnalysisError("No documents to analyze")

        key = get_cache_key(
            "analysis",
            query=query,
            depth=depth.value,
            documents=sorted(d.id for d in documents),
        )
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Analysis cache hit for '{query}'")
            return cached

        started = time.monotonic()
        provider = get_available_llm_provider() if self.use_llm else None
        if provider:
            result = await self._analyze_with_llm(documents, query, depth, provider, started)
        else:
            logger.info("No LLM provider configured, using template analysis")
            result = self._analyze_with_template(documents, query, depth, started)

        self.cache.set(key, result)
        return result

    # ══════════════════════════════════════════════════════════════════════
    # LLM Analysis
    # ══════════════════════════════════════════════════════════════════════

    @staticmethod
    def _format_document(document: Document) -> str:
        lines = [
            f"ID: {document.id}",
            f"Source: {document.source}",
            f"Title: {document.title}",
        ]
        if document.url:
            lines.append(f"URL: {document.url}")
        lines.append(f"Content: {truncate(document.content, DOCUMENT_CONTENT_LIMIT)}")
        return "\n".join(lines)

    def _pack_documents(self, documents: List[Document], char_budget: int) -> List[str]:
        """Most relevant documents first until the budget is spent (at least one)."""
        blocks: List[str] = []
        used = 0
        for document in sorted(documents, key=lambda d: d.relevance, reverse=True):
            block = self._format_document(document)
            if blocks and used + len(block) > char_budget:
                break
            blocks.append(block)
            used += len(block)
        return blocks

    def build_prompt(self, documents: List[Document], query: str, depth: Depth) -> str:
        blocks = self._pack_documents(documents, DEPTH_SETTINGS[depth]["char_budget"])
        body = "\n\n---\n\n".join(blocks)
        return (
            f"Research query: {query}\n\n"
            f"Documents ({len(blocks)} of {len(documents)}):\n\n{body}\n\n"
            "Analyze these documents and respond with the JSON object described."
        )

    async def _analyze_with_llm(
        self,
        documents: List[Document],
        query: str,
        depth: Depth,
        provider: Tuple[str, str],
        started: float,
    ) -> AnalysisResult:
        name, api_key = provider
        settings = DEPTH_SETTINGS[depth]
        prompt = self.build_prompt(documents, query, depth)
        logger.info(f"Analyzing {len(documents)} documents with {name} ({depth.value})")

        try:
            data = await call_llm(
                name,
                api_key,
                SYSTEM_PROMPT,
                prompt,
                model=settings["model"] if name == "openai" else None,
                max_tokens=settings["max_tokens"],
            )
        except Exception as e:
            raise AnalysisError(f"AI analysis failed: {e}") from e

        return self.parse_response(data, documents, query, name, started)

    def parse_response(
        self,
        data: Dict[str, Any],
        documents: List[Document],
        query: str,
        provider: str,
        started: float,
    ) -> AnalysisResult:
        """Coerce a model answer into an AnalysisResult, dropping unknown document ids."""
        by_id = {d.id: d for d in documents}

        insights: List[Insight] = []
        for index, item in enumerate(data.get("insights") or []):
            if not isinstance(item, dict):
                continue
            try:
                importance = Importance(str(item.get("importance", "medium")).lower())
            except ValueError:
                importance = Importance.MEDIUM
            evidence = [
                Evidence(document_id=doc_id, excerpt=_excerpt(by_id[doc_id]))
                for doc_id in item.get("evidence") or []
                if isinstance(doc_id, str) and doc_id in by_id
            ]
            insights.append(
                Insight(
                    id=f"insight-{index + 1}",
                    category=str(item.get("category") or "general"),
                    title=str(item.get("title") or "Untitled insight"),
                    description=str(item.get("description") or ""),
                    importance=importance,
                    evidence=evidence,
                )
            )

        recommendations = [
            str(r) for r in data.get("recommendations") or [] if isinstance(r, (str, int, float))
        ]
        citations = [
            c for c in data.get("citations") or [] if isinstance(c, str) and c in by_id
        ]
        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            summary = json.dumps(summary) if summary else "No summary was produced."

        return AnalysisResult(
            query=query,
            summary=summary.strip(),
            insights=insights,
            recommendations=recommendations,
            sources=select_sources(documents, citations),
            metadata=AnalysisMetadata(
                total_documents=len(documents),
                analysis_duration=int((time.monotonic() - started) * 1000),
                confidence=compute_confidence(documents, insights, citations),
                provider=provider,
            ),
        )

    # ══════════════════════════════════════════════════════════════════════
    # Template Analysis
    # ══════════════════════════════════════════════════════════════════════

    def _analyze_with_template(
        self, documents: List[Document], query: str, depth: Depth, started: float
    ) -> AnalysisResult:
        ranked = sorted(documents, key=lambda d: d.relevance, reverse=True)
        by_source: "OrderedDict[str, List[Document]]" = OrderedDict()
        for document in ranked:
            by_source.setdefault(document.source, []).append(document)

        labels = [SOURCE_LABELS.get(s, s) for s in by_source]
        keywords = extract_keywords(" ".join(f"{d.title} {d.content}" for d in documents))

        summary_parts = [
            f'Research on "{query}" collected {len(documents)} documents '
            f"from {len(by_source)} source(s): {', '.join(labels)}."
        ]
        if keywords:
            summary_parts.append(f"Recurring themes include {', '.join(keywords[:5])}.")
        summary_parts.append(f'The most relevant result is "{ranked[0].title}".')

        insights: List[Insight] = []
        for source, docs in by_source.items():
            label = SOURCE_LABELS.get(source, source)
            top = docs[:3]
            insights.append(
                Insight(
                    id=f"insight-{len(insights) + 1}",
                    category="source_overview",
                    title=f"{label} findings",
                    description=(
                        f"{len(docs)} result(s) from {label}. Leading results: "
                        + "; ".join(d.title for d in top)
                    ),
                    importance=Importance.HIGH if len(docs) >= 5 else Importance.MEDIUM,
                    evidence=[Evidence(document_id=d.id, excerpt=_excerpt(d)) for d in top],
                )
            )

        if keywords:
            theme = keywords[0]
            mentioning = [
                d for d in ranked if theme in f"{d.title} {d.content}".lower()
            ][:3]
            insights.append(
                Insight(
                    id=f"insight-{len(insights) + 1}",
                    category="themes",
                    title="Recurring themes",
                    description=(
                        f"The terms {', '.join(keywords[:5])} appear most often "
                        "across the collected documents."
                    ),
                    importance=Importance.MEDIUM,
                    evidence=[Evidence(document_id=d.id, excerpt=_excerpt(d)) for d in mentioning],
                )
            )

        recommendations = [f'Start with the top-ranked result: "{ranked[0].title}".']
        if len(by_source) > 1:
            recommendations.append(
                f"Cross-check findings between {', '.join(labels)} before acting on them."
            )
        else:
            recommendations.append(
                "Add more sources to cross-validate these findings."
            )
        if keywords:
            recommendations.append(f"Investigate '{keywords[0]}' in more detail.")
        if depth != Depth.DEEP:
            recommendations.append("Re-run with deep depth for broader coverage.")

        cited: List[str] = []
        for insight in insights:
            for evidence in insight.evidence:
                if evidence.document_id not in cited:
                    cited.append(evidence.document_id)

        return AnalysisResult(
            query=query,
            summary=" ".join(summary_parts),
            insights=insights,
            recommendations=recommendations,
            sources=select_sources(documents, cited),
            metadata=AnalysisMetadata(
                total_documents=len(documents),
                analysis_duration=int((time.monotonic() - started) * 1000),
                confidence=compute_confidence(documents, insights, cited),
                provider="template",
            ),
        )
