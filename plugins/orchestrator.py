"""
Research orchestration.

Runs one research query end to end: discover the source plugins that
support it, collect documents from them concurrently behind a semaphore,
analyse the aggregate and optionally export the report. Progress is
published through a ProgressTracker onto an asyncio.Queue.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.analysis import Analyzer
from core.dedup import deduplicate_documents
from core.errors import NoDocumentsError, NoPluginsAvailableError, describe_error
from core.lifecycle import JobLifecycle
from core.progress import ProgressState, ProgressTracker
from models.research import (
    AnalysisResult,
    Document,
    ExportResult,
    PluginError,
    PluginErrorCode,
)
from plugins.base import BaseSourcePlugin
from plugins.registry import PluginRegistry
from plugins.types import (
    ExportContext,
    PluginContext,
    PluginExecutionResult,
    PluginExecutionStatus,
    QueryContext,
)

__all__ = ["ResearchOrchestrator", "ResearchResult", "DEFAULT_MAX_CONCURRENCY"]

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 5


@dataclass
class ResearchResult:
    analysis: AnalysisResult
    plugin_results: List[PluginExecutionResult]
    export: Optional[ExportResult] = None
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_job_result(self) -> Dict[str, Any]:
        """JSON payload stored on the completed job."""
        data = self.analysis.to_wire()
        data["plugins"] = [r.to_dict() for r in self.plugin_results]
        data["warnings"] = list(self.warnings)
        data["execution"] = dict(self.metadata)
        if self.export is not None:
            data["export"] = self.export.to_wire()
        return data


class ResearchOrchestrator:
    def __init__(
        self,
        registry: PluginRegistry,
        analyzer: Optional[Analyzer] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.registry = registry
        self.analyzer = analyzer or Analyzer()
        self.max_concurrency = max(max_concurrency, 1)

    async def execute_research(
        self,
        query: str,
        context: QueryContext,
        job_id: str,
        progress: Optional["asyncio.Queue[ProgressState]"] = None,
        lifecycle: Optional[JobLifecycle] = None,
    ) -> ResearchResult:
        """
        Execute a research query.

        Args:
            query: The research brief
            context: Depth, requested sources and export settings
            job_id: Job identifier used for logging and progress snapshots
            progress: Optional channel receiving ProgressState snapshots
            lifecycle: Optional lifecycle record updated per plugin

        Returns:
            ResearchResult with the analysis, per-plugin outcomes and export

        Raises:
            NoPluginsAvailableError: No source plugin supports the query
            NoDocumentsError: Every plugin failed or returned nothing
        """
        started = time.monotonic()
        tracker = ProgressTracker(job_id, channel=progress)

        try:
            # Phase 1: plugin discovery
            tracker.start_phase("plugin_discovery", "Discovering relevant plugins")
            plugins = self.registry.query(query, context)
            if not plugins:
                raise NoPluginsAvailableError()
            tracker.complete_phase(
                "plugin_discovery",
                f"Found {len(plugins)} plugins: {', '.join(p.id for p in plugins)}",
            )
            logger.info(f"[{job_id}] Using plugins: {[p.id for p in plugins]}")

            # Phase 2: data collection
            tracker.set_plugins([p.id for p in plugins])
            tracker.start_phase("data_collection", "Collecting data from sources")
            plugin_results = await self._collect(plugins, query, context, job_id, tracker, lifecycle)

            documents = self._aggregate(plugin_results)
            if not documents:
                raise NoDocumentsError()
            tracker.complete_phase(
                "data_collection", f"Collected {len(documents)} documents"
            )

            # Phase 3: analysis
            tracker.start_phase("analysis", f"Analyzing {len(documents)} documents")
            analysis = await self.analyzer.analyze(documents, query, context.depth)
            tracker.complete_phase("analysis", "Analysis complete")

            # Phase 4: export
            export = None
            if context.export_format:
                tracker.start_phase("export", f"Exporting to {context.export_format.value}")
                export = await self._export(analysis, context)
                tracker.complete_phase("export")
            else:
                tracker.skip_phase("export")

            warnings = [
                f"{r.plugin_id}: {describe_error(r.error)}"
                for r in plugin_results
                if r.status == PluginExecutionStatus.FAILED
            ]
            if export is not None and not export.success:
                warnings.append(f"export: {export.error}")

            tracker.complete("Research completed")
            return ResearchResult(
                analysis=analysis,
                plugin_results=plugin_results,
                export=export,
                warnings=warnings,
                metadata={
                    "duration": int((time.monotonic() - started) * 1000),
                    "pluginsUsed": [p.id for p in plugins],
                    "totalDocuments": len(documents),
                },
            )
        except Exception as e:
            tracker.fail(str(e))
            raise

    # ══════════════════════════════════════════════════════════════════════
    # Collection
    # ══════════════════════════════════════════════════════════════════════

    async def _collect(
        self,
        plugins: List[BaseSourcePlugin],
        query: str,
        context: QueryContext,
        job_id: str,
        tracker: ProgressTracker,
        lifecycle: Optional[JobLifecycle],
    ) -> List[PluginExecutionResult]:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(
            *(
                self._execute_plugin(plugin, query, context, job_id, tracker, semaphore)
                for plugin in plugins
            ),
            return_exceptions=True,
        )

        results: List[PluginExecutionResult] = []
        for plugin, outcome in zip(plugins, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"[{job_id}] Plugin {plugin.id} raised: {outcome}")
                outcome = PluginExecutionResult(
                    plugin_id=plugin.id,
                    status=PluginExecutionStatus.FAILED,
                    end_time=time.time(),
                    error=PluginError(
                        code=PluginErrorCode.PERM_ERROR,
                        message=str(outcome) or type(outcome).__name__,
                    ),
                )
                self.registry.update_stats(plugin.id, False, 0, outcome.error.message)
                tracker.update_plugin(plugin.id, 100)

            if lifecycle is not None:
                status: Dict[str, Any] = {
                    "status": outcome.status.value,
                    "duration": outcome.duration,
                    "documentsFound": len(outcome.result.documents) if outcome.result else 0,
                }
                if outcome.error is not None:
                    status["error"] = outcome.error.message
                lifecycle.update_plugin_status(plugin.id, **status)
            results.append(outcome)
        return results

    async def _execute_plugin(
        self,
        plugin: BaseSourcePlugin,
        query: str,
        context: QueryContext,
        job_id: str,
        tracker: ProgressTracker,
        semaphore: asyncio.Semaphore,
    ) -> PluginExecutionResult:
        async with semaphore:
            execution = PluginExecutionResult(
                plugin_id=plugin.id, status=PluginExecutionStatus.RUNNING
            )
            tracker.update_plugin(plugin.id, 0, f"Searching {plugin.name}")

            def report(percent: float, message: Optional[str] = None) -> None:
                tracker.update_plugin(plugin.id, percent, message)

            plugin_context = PluginContext(
                query=query,
                depth=context.depth,
                job_id=job_id,
                config=plugin.config,
                update_progress=report,
            )
            result = await plugin.search(plugin_context)

            execution.end_time = time.time()
            execution.result = result
            if result.success:
                execution.status = PluginExecutionStatus.COMPLETED
            else:
                execution.status = PluginExecutionStatus.FAILED
                execution.error = result.error

            self.registry.update_stats(
                plugin.id,
                result.success,
                execution.duration,
                result.error.message if result.error else None,
            )
            tracker.update_plugin(
                plugin.id,
                100,
                f"{plugin.name}: {len(result.documents)} documents"
                if result.success
                else f"{plugin.name} failed",
            )
            return execution

    @staticmethod
    def _aggregate(results: List[PluginExecutionResult]) -> List[Document]:
        documents: List[Document] = []
        for r in results:
            if r.status == PluginExecutionStatus.COMPLETED and r.result is not None:
                documents.extend(r.result.documents)
        return deduplicate_documents(documents)

    # ══════════════════════════════════════════════════════════════════════
    # Export
    # ══════════════════════════════════════════════════════════════════════

    async def _export(self, analysis: AnalysisResult, context: QueryContext) -> ExportResult:
        """Export the analysis; failures are logged and returned, never raised."""
        export_format = context.export_format
        plugin = self.registry.get_export_plugin(export_format)
        if plugin is None:
            logger.error(f"No export plugin registered for {export_format.value}")
            return ExportResult(
                success=False,
                format=export_format.value,
                error=f"No export plugin available for format {export_format.value}",
            )

        started = time.monotonic()
        try:
            result = await plugin.export(
                analysis,
                ExportContext(
                    format=export_format,
                    credentials=dict(context.export_credentials or {}),
                    options=dict(context.export_options),
                ),
            )
        except Exception as e:
            logger.error(f"Export to {export_format.value} failed: {e}")
            result = ExportResult(success=False, format=export_format.value, error=str(e))

        self.registry.update_stats(
            plugin.id,
            result.success,
            int((time.monotonic() - started) * 1000),
            result.error,
        )
        if not result.success:
            logger.error(f"Export to {export_format.value} failed: {result.error}")
        return result
