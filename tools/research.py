"""
Research tools shared by every transport.

The stdio MCP server, the JSON-RPC endpoint and the REST tool routes all
call into one ResearchService so job submission, status and export
behave identically everywhere.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.errors import JobNotFoundError, RateLimitExceededError, ToolNotFoundError
from jobs.queue import Job, JobQueue
from models import (
    AnalysisResult,
    JobStatus,
    PluginErrorCode,
    ResearchBriefInput,
    ResearchExportInput,
    ResearchStatusInput,
)
from plugins.registry import PluginRegistry
from plugins.types import ExportContext
from utils.rate_limit import check_rate_limit

__all__ = ["ResearchService", "TOOL_DEFINITIONS", "BRIEF_RATE_LIMIT", "BRIEF_RATE_WINDOW"]

logger = logging.getLogger(__name__)

BRIEF_RATE_LIMIT = 10
BRIEF_RATE_WINDOW = 60

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "research_brief",
        "description": (
            "Submit a research brief for automated analysis. Searches GitHub, "
            "web search, Reddit and Stack Overflow, then analyzes the findings. "
            "Returns a jobId to poll with research_status."
        ),
        "inputSchema": ResearchBriefInput.model_json_schema(),
    },
    {
        "name": "research_status",
        "description": "Check the status of a research job",
        "inputSchema": ResearchStatusInput.model_json_schema(),
    },
    {
        "name": "research_export",
        "description": "Export completed research results as markdown, notion or json",
        "inputSchema": ResearchExportInput.model_json_schema(),
    },
]


def _iso(timestamp: Optional[float]) -> Optional[str]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _job_error(message: str) -> Dict[str, Any]:
    """Structured error for a failed job from its stored message."""
    lowered = message.lower()
    if "no plugins available" in lowered or "invalid" in lowered:
        return {"code": PluginErrorCode.USER_ERROR.value, "message": message}
    if "rate limit" in lowered:
        return {"code": PluginErrorCode.TEMP_ERROR.value, "message": message, "retryIn": 300}
    if "timed out" in lowered or "timeout" in lowered:
        return {"code": PluginErrorCode.TEMP_ERROR.value, "message": message, "retryIn": 60}
    return {"code": PluginErrorCode.PERM_ERROR.value, "message": message}


def _not_found(job_id: str) -> Dict[str, Any]:
    return {
        "success": False,
        "jobId": job_id,
        "error": "Job not found",
        "message": "Research job not found. Please check the jobId.",
    }


class ResearchService:
    def __init__(
        self,
        queue: JobQueue,
        registry: PluginRegistry,
        export_dir: Optional[str] = None,
        rate_limit: int = BRIEF_RATE_LIMIT,
        rate_window: float = BRIEF_RATE_WINDOW,
    ):
        self.queue = queue
        self.registry = registry
        self.export_dir = export_dir
        self.rate_limit = rate_limit
        self.rate_window = rate_window
        self._handlers: Dict[str, Callable[..., Awaitable[Dict[str, Any]]]] = {
            "research_brief": self.research_brief,
            "research_status": self.research_status,
            "research_export": self.research_export,
        }

    @staticmethod
    def list_tools() -> List[Dict[str, Any]]:
        return [dict(tool) for tool in TOOL_DEFINITIONS]

    def has_tool(self, name: str) -> bool:
        return name in self._handlers

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        user: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Dispatch a tool call by name.

        Raises:
            ToolNotFoundError: Unknown tool name
            pydantic.ValidationError: Arguments failed validation
            RateLimitExceededError: Too many research briefs from one user
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise ToolNotFoundError(name)
        return await handler(arguments or {}, user=user)

    # ══════════════════════════════════════════════════════════════════════
    # research_brief
    # ══════════════════════════════════════════════════════════════════════

    async def research_brief(
        self, arguments: Dict[str, Any], user: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        params = ResearchBriefInput.model_validate(arguments)

        user_id = (user or {}).get("id")
        rate_key = f"research_brief:{user_id or 'anonymous'}"
        if not check_rate_limit(rate_key, self.rate_limit, self.rate_window):
            logger.warning(f"Rate limit exceeded for {rate_key}")
            raise RateLimitExceededError(
                f"Rate limit exceeded: max {self.rate_limit} research briefs "
                f"per {int(self.rate_window)} seconds",
                retry_in=int(self.rate_window),
            )

        data = params.to_job_data()
        data["userId"] = user_id
        job_id = await asyncio.to_thread(self.queue.create_job, data)
        logger.info(f"Queued research job {job_id} for {user_id or 'anonymous'}")

        return {
            "success": True,
            "jobId": job_id,
            "message": (
                "Research job started! Check status with research_status "
                f"tool using jobId: {job_id}"
            ),
            "estimatedTime": params.estimated_time,
            "details": {
                "brief": params.brief,
                "depth": params.depth.value,
                "sources": params.sources,
                "exportFormat": params.export_format.value if params.export_format else None,
            },
        }

    # ══════════════════════════════════════════════════════════════════════
    # research_status
    # ══════════════════════════════════════════════════════════════════════

    async def research_status(
        self, arguments: Dict[str, Any], user: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        params = ResearchStatusInput.model_validate(arguments)
        try:
            job = await asyncio.to_thread(self.queue.require_job, params.job_id)
        except JobNotFoundError as e:
            return _not_found(e.job_id)
        return await self.describe_job(job)

    async def describe_job(self, job: Job) -> Dict[str, Any]:
        """Status document for a job, shaped by its state."""
        base = {
            "jobId": job.id,
            "status": job.status.value,
            "progress": job.progress,
            "currentStep": job.current_step,
            "createdAt": _iso(job.created_at),
            "startedAt": _iso(job.started_at),
            "attempts": job.attempts,
        }

        if job.status == JobStatus.COMPLETED:
            return {
                "success": True,
                **base,
                "message": "Research completed successfully!",
                "result": job.result,
                "completedAt": _iso(job.completed_at),
                "nextStep": "Use research_export to export the results",
            }

        if job.status == JobStatus.FAILED:
            return {
                "success": False,
                **base,
                "message": "The research job encountered an error",
                "error": _job_error(job.error or "Research job failed"),
                "completedAt": _iso(job.completed_at),
            }

        details = await asyncio.to_thread(self.queue.get_job_progress, job.id)
        response = {
            "success": True,
            **base,
            "message": f"Research in progress ({job.progress}% complete)",
            "hint": "Check back in a few moments",
        }
        if details:
            response["details"] = details
        return response

    # ══════════════════════════════════════════════════════════════════════
    # research_export
    # ══════════════════════════════════════════════════════════════════════

    async def research_export(
        self, arguments: Dict[str, Any], user: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        params = ResearchExportInput.model_validate(arguments)
        try:
            job = await asyncio.to_thread(self.queue.require_job, params.job_id)
        except JobNotFoundError as e:
            return _not_found(e.job_id)

        if job.status != JobStatus.COMPLETED:
            return {
                "success": False,
                "jobId": job.id,
                "message": (
                    f"Cannot export: Research job is {job.status.value}. "
                    "Please wait for completion."
                ),
                "currentStatus": job.status.value,
                "progress": job.progress,
            }

        export_format = params.format
        plugin = self.registry.get_export_plugin(export_format)
        if plugin is None:
            return {
                "success": False,
                "jobId": job.id,
                "format": export_format.value,
                "error": f"No export plugin available for format {export_format.value}",
            }

        analysis = AnalysisResult.model_validate(job.result)
        options: Dict[str, Any] = {}
        if self.export_dir:
            options["output_dir"] = self.export_dir
        result = await plugin.export(
            analysis,
            ExportContext(
                format=export_format,
                credentials=dict(params.credentials or {}),
                options=options,
            ),
        )

        if not result.success:
            return {
                "success": False,
                "jobId": job.id,
                "format": export_format.value,
                "error": result.error,
                "message": f"Export to {export_format.value} failed",
            }

        response: Dict[str, Any] = {
            "success": True,
            "jobId": job.id,
            "format": export_format.value,
            "message": f"Research exported successfully as {export_format.value}!",
        }
        if result.location:
            response["location"] = result.location
        if result.data is not None:
            response["data"] = result.data
        return response
