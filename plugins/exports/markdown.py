"""Markdown report export."""

import asyncio
import logging
import os
from collections import OrderedDict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

from models.config import SOURCE_LABELS, ExportFormat
from models.research import AnalysisResult, Document, ExportResult, Insight
from plugins.base import BaseExportPlugin
from plugins.types import ExportContext

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_DIR = "./exports"

IMPORTANCE_MARKERS = {"high": "🔴", "medium": "🟡", "low": "🟢"}


def _category_title(category: str) -> str:
    return category.replace("_", " ").replace("-", " ").title()


def render_markdown(analysis: AnalysisResult) -> str:
    """Render an analysis as a standalone Markdown report."""
    meta = analysis.metadata
    lines: List[str] = [
        f"# Research Report: {analysis.query}",
        "",
        f"**Generated:** {meta.timestamp}  ",
        f"**Documents analyzed:** {meta.total_documents}  ",
        f"**Confidence:** {round(meta.confidence * 100)}%  ",
        f"**Analysis:** {meta.provider}",
        "",
        "## Executive Summary",
        "",
        analysis.summary,
        "",
    ]

    titles: Dict[str, Document] = {d.id: d for d in analysis.sources}

    if analysis.insights:
        lines += ["## Key Insights", ""]
        by_category: "OrderedDict[str, List[Insight]]" = OrderedDict()
        for insight in analysis.insights:
            by_category.setdefault(insight.category, []).append(insight)

        for category, insights in by_category.items():
            lines += [f"### {_category_title(category)}", ""]
            for insight in insights:
                marker = IMPORTANCE_MARKERS[insight.importance.value]
                lines += [
                    f"#### {marker} {insight.title}",
                    "",
                    f"*Importance: {insight.importance.value}*",
                    "",
                    insight.description,
                    "",
                ]
                if insight.evidence:
                    lines += ["**Evidence:**", ""]
                    for evidence in insight.evidence[:3]:
                        source = titles.get(evidence.document_id)
                        cite = (
                            f" ([{source.title}]({source.url}))"
                            if source and source.url
                            else ""
                        )
                        excerpt = " ".join(evidence.excerpt.split())
                        lines.append(f"> {excerpt}{cite}")
                        lines.append("")

    if analysis.recommendations:
        lines += ["## Recommendations", ""]
        lines += [f"{i}. {rec}" for i, rec in enumerate(analysis.recommendations, 1)]
        lines.append("")

    if analysis.sources:
        lines += ["## Sources", ""]
        by_source: "OrderedDict[str, List[Document]]" = OrderedDict()
        for document in analysis.sources:
            by_source.setdefault(document.source, []).append(document)
        for source, documents in by_source.items():
            lines += [f"### {SOURCE_LABELS.get(source, source)}", ""]
            for document in documents:
                link = f"[{document.title}]({document.url})" if document.url else document.title
                score = document.metadata.relevance_score
                suffix = f" (relevance: {score:.2f})" if score is not None else ""
                lines.append(f"- {link}{suffix}")
            lines.append("")

    lines += [
        "---",
        "",
        f"*Report ID: {analysis.id}. Generated by Research Engine MCP.*",
        "",
    ]
    return "\n".join(lines)


class MarkdownExportPlugin(BaseExportPlugin):
    id = "markdown"
    name = "Markdown Export"
    description = "Writes the research report as a Markdown file"
    format = ExportFormat.MARKDOWN

    def _output_dir(self, context: ExportContext) -> Path:
        options = context.options
        return Path(
            options.get("output_dir")
            or options.get("outputDir")
            or self.config.get("output_dir")
            or os.getenv("EXPORT_DIR")
            or DEFAULT_EXPORT_DIR
        )

    async def do_export(self, analysis: AnalysisResult, context: ExportContext) -> ExportResult:
        content = render_markdown(analysis)
        data = {
            "content": content,
            "wordCount": len(content.split()),
            "size": len(content.encode("utf-8")),
        }

        if context.options.get("write", True) is False:
            return ExportResult(success=True, format=self.format.value, data=data)

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        path = self._output_dir(context) / f"research-{analysis.id}-{timestamp}.md"

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

        await asyncio.to_thread(write)
        logger.info(f"Markdown report written to {path}")
        return ExportResult(
            success=True,
            format=self.format.value,
            location=str(path),
            data=data,
        )
