"""Notion page export."""

import logging
from typing import Any, Dict, List

from api import notion as notion_api
from models.config import SOURCE_LABELS, ExportFormat
from models.research import AnalysisResult, ExportResult
from plugins.base import BaseExportPlugin
from plugins.types import ExportContext

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 2000  # Notion rich_text content limit
IMPORTANCE_EMOJI = {"high": "🔴", "medium": "🟡", "low": "🟢"}


def _text(content: str, italic: bool = False) -> List[Dict[str, Any]]:
    """Rich text items for ``content``, split into chunks Notion accepts."""
    chunks = [
        content[start:start + MAX_TEXT_LENGTH]
        for start in range(0, len(content), MAX_TEXT_LENGTH)
    ] or [""]
    items: List[Dict[str, Any]] = []
    for chunk in chunks:
        item: Dict[str, Any] = {"type": "text", "text": {"content": chunk}}
        if italic:
            item["annotations"] = {"italic": True}
        items.append(item)
    return items


def _block(block_type: str, content: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"rich_text": _text(content, extra.pop("italic", False))}
    body.update(extra)
    return {"object": "block", "type": block_type, block_type: body}


def _divider() -> Dict[str, Any]:
    return {"object": "block", "type": "divider", "divider": {}}


def _bookmark(url: str, caption: str) -> Dict[str, Any]:
    return {
        "object": "block",
        "type": "bookmark",
        "bookmark": {"url": url, "caption": _text(caption)},
    }


def _credential(credentials: Dict[str, Any], *names: str) -> str:
    for name in names:
        value = credentials.get(name)
        if value:
            return str(value)
    return ""


def build_page_properties(analysis: AnalysisResult, title_property: str = "title") -> Dict[str, Any]:
    meta = analysis.metadata
    return {
        title_property: {"title": _text(f"Research: {analysis.query}")},
        "Status": {"select": {"name": "Completed"}},
        "Date": {"date": {"start": meta.timestamp}},
        "Document Count": {"number": meta.total_documents},
        "Confidence": {"number": round(meta.confidence * 100)},
    }


def build_blocks(analysis: AnalysisResult) -> List[Dict[str, Any]]:
    """Page body: summary, insights with evidence, recommendations, sources."""
    blocks: List[Dict[str, Any]] = [
        _block("heading_1", "📋 Executive Summary"),
        _block("paragraph", analysis.summary),
        _divider(),
    ]

    if analysis.insights:
        blocks.append(_block("heading_1", "💡 Key Insights"))
        for insight in analysis.insights:
            emoji = IMPORTANCE_EMOJI.get(insight.importance.value, "")
            blocks.append(_block("heading_2", f"{emoji} {insight.title}".strip()))
            blocks.append(_block("paragraph", insight.description))
            if insight.evidence:
                blocks.append(_block("bulleted_list_item", "Supporting evidence:", italic=True))
                for evidence in insight.evidence[:3]:
                    blocks.append(_block("bulleted_list_item", evidence.excerpt))
        blocks.append(_divider())

    if analysis.recommendations:
        blocks.append(_block("heading_1", "🎯 Recommendations"))
        for recommendation in analysis.recommendations:
            blocks.append(_block("numbered_list_item", recommendation))
        blocks.append(_divider())

    if analysis.sources:
        blocks.append(_block("heading_1", "📚 Sources"))
        for document in analysis.sources:
            label = SOURCE_LABELS.get(document.source, document.source)
            if document.url:
                blocks.append(_bookmark(document.url, f"[{label}] {document.title}"))
            else:
                blocks.append(_block("bulleted_list_item", f"[{label}] {document.title}"))

    meta = analysis.metadata
    blocks.append(
        _block(
            "callout",
            f"Analyzed {meta.total_documents} documents with "
            f"{round(meta.confidence * 100)}% confidence ({meta.provider} analysis).",
            icon={"type": "emoji", "emoji": "🔬"},
        )
    )
    return blocks


class NotionExportPlugin(BaseExportPlugin):
    id = "notion"
    name = "Notion Export"
    description = "Creates a research page in a Notion database"
    format = ExportFormat.NOTION

    def validate_config(self, config: Dict[str, Any]) -> bool:
        return bool(
            _credential(config, "token")
            and _credential(config, "databaseId", "database_id")
        )

    async def do_export(self, analysis: AnalysisResult, context: ExportContext) -> ExportResult:
        token = _credential(context.credentials, "token")
        database_id = _credential(context.credentials, "databaseId", "database_id")
        title_property = context.options.get("title_property", "title")

        page = await notion_api.create_page(
            token, database_id, build_page_properties(analysis, title_property)
        )
        page_id = page.get("id", "")
        await notion_api.append_blocks(token, page_id, build_blocks(analysis))

        url = page.get("url") or f"https://notion.so/{page_id.replace('-', '')}"
        logger.info(f"Exported analysis {analysis.id} to Notion page {page_id}")
        return ExportResult(
            success=True,
            format=self.format.value,
            location=url,
            data={"pageId": page_id},
        )
