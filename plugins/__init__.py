"""
Research plugins.

    registry         PluginRegistry: registration, lookup, stats, lifecycle
    orchestrator     ResearchOrchestrator: discovery, collection, analysis, export
    sources          github, websearch, reddit, stackoverflow
    exports          markdown, notion, json
"""

from plugins.base import BaseExportPlugin, BaseSourcePlugin
from plugins.orchestrator import ResearchOrchestrator, ResearchResult
from plugins.registry import PluginRegistry
from plugins.types import (
    ExportContext,
    PluginContext,
    PluginExecutionResult,
    PluginExecutionStatus,
    QueryContext,
)

__all__ = [
    "BaseExportPlugin",
    "BaseSourcePlugin",
    "ExportContext",
    "PluginContext",
    "PluginExecutionResult",
    "PluginExecutionStatus",
    "PluginRegistry",
    "QueryContext",
    "ResearchOrchestrator",
    "ResearchResult",
]
