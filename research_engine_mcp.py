#!/usr/bin/env python3
"""
Research Engine MCP Server

An MCP server that turns a natural-language research brief into a
structured report. Jobs are queued in SQLite and processed in the
background: source plugins search GitHub, the web, Reddit and Stack
Overflow, the findings are analyzed (LLM when a provider key is set,
template otherwise) and optionally exported to Markdown, Notion or JSON.

Features:
- Asynchronous jobs with progress polling (research_brief / research_status)
- Pluggable sources and exports with per-plugin retries and circuit breakers
- Partial results when some sources fail
- stdio transport by default, HTTP + JSON-RPC with ``--http``
"""

import argparse
import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import uvicorn
from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError

from core.config import Settings, configure_logging, load_config
from core.errors import RateLimitExceededError
from core.llm_clients import get_available_llm_provider
from jobs.queue import JobQueue
from jobs.worker import ResearchWorker
from plugins.orchestrator import ResearchOrchestrator
from plugins.registry import PluginRegistry
from server.app import create_app
from server.jsonrpc import validation_message
from tools.research import ResearchService

logger = logging.getLogger("research_engine_mcp")

# Caller identity for the stdio transport, where there is no bearer token
LOCAL_USER = {"id": "local", "email": ""}

_runtime: Dict[str, Any] = {}


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[Dict[str, Any]]:
    """Start the plugin registry, job queue and worker for the stdio server."""
    settings = load_config()
    registry = PluginRegistry(plugin_dir=settings.plugin_dir)
    await registry.initialize()
    queue = JobQueue(settings.db_path, max_attempts=settings.job_max_attempts)
    orchestrator = ResearchOrchestrator(
        registry, max_concurrency=settings.max_concurrent_plugins
    )
    worker = ResearchWorker(
        queue,
        orchestrator,
        max_concurrent_jobs=settings.max_concurrent_jobs,
        poll_interval=settings.poll_interval,
        retention_days=settings.job_retention_days,
        export_dir=settings.export_dir,
    )
    await worker.start()

    service = ResearchService(queue, registry, export_dir=settings.export_dir)
    _runtime["service"] = service
    try:
        yield {"service": service}
    finally:
        _runtime.clear()
        await worker.stop()
        await registry.dispose()
        queue.close()


mcp = FastMCP("research_engine_mcp", lifespan=lifespan)


async def _run_tool(name: str, arguments: Dict[str, Any]) -> str:
    service: Optional[ResearchService] = _runtime.get("service")
    if service is None:
        return json.dumps({"success": False, "error": "Research service is not running"})

    try:
        result = await service.call_tool(name, arguments, user=LOCAL_USER)
    except ValidationError as e:
        return json.dumps({"success": False, "error": validation_message(e)}, indent=2)
    except RateLimitExceededError as e:
        return json.dumps(
            {"success": False, "error": str(e), "retryIn": e.retry_in}, indent=2
        )
    return json.dumps(result, indent=2)


# ============================================================================
# Tools
# ============================================================================


@mcp.tool(
    name="research_brief",
    annotations={
        "title": "Submit Research Brief",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def research_brief(
    brief: str,
    depth: str = "standard",
    sources: Optional[List[str]] = None,
    export_format: Optional[str] = None,
    export_credentials: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Submit a research brief for automated analysis.

    The research runs in the background. Poll research_status with the
    returned jobId until the job is completed, then read the report from
    the result or call research_export.

    Args:
        brief (str): What to research, 10-2000 characters. Be specific.
        depth (str): 'quick', 'standard' or 'deep'. Deeper research
            searches more results per source.
        sources (Optional[List[str]]): Plugin ids to search: github,
            websearch, reddit, stackoverflow. Defaults to github and reddit.
        export_format (Optional[str]): 'markdown', 'notion' or 'json' to
            export the finished report.
        export_credentials (Optional[Dict]): Notion credentials
            ({"token": ..., "databaseId": ...}) when exporting to Notion.

    Returns:
        str: JSON with jobId, estimatedTime and the accepted parameters

    Examples:
        - research_brief("Compare Python background job libraries for Redis")
        - research_brief("React deployment issues on Vercel", depth="deep",
          sources=["github", "stackoverflow"])
    """
    arguments: Dict[str, Any] = {"brief": brief, "depth": depth}
    if sources is not None:
        arguments["sources"] = sources
    if export_format:
        arguments["export_format"] = export_format
    if export_credentials:
        arguments["export_credentials"] = export_credentials
    return await _run_tool("research_brief", arguments)


@mcp.tool(
    name="research_status",
    annotations={
        "title": "Check Research Status",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def research_status(job_id: str) -> str:
    """
    Check the status of a research job.

    Args:
        job_id (str): The jobId returned by research_brief

    Returns:
        str: JSON with status, progress and current step; the full result
            once completed, or a structured error once failed
    """
    return await _run_tool("research_status", {"job_id": job_id})


@mcp.tool(
    name="research_export",
    annotations={
        "title": "Export Research Results",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def research_export(
    job_id: str,
    format: str = "markdown",
    credentials: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Export a completed research job.

    Args:
        job_id (str): The jobId of a completed research job
        format (str): 'markdown', 'notion' or 'json'
        credentials (Optional[Dict]): Notion token and databaseId for
            Notion exports

    Returns:
        str: JSON with the export location or content
    """
    arguments: Dict[str, Any] = {"job_id": job_id, "format": format}
    if credentials:
        arguments["credentials"] = credentials
    return await _run_tool("research_export", arguments)


def validate_environment(settings: Settings) -> List[str]:
    """Log which optional integrations are configured and return them."""
    integrations = {
        "GitHub token": os.getenv("GITHUB_TOKEN"),
        "Stack Exchange key": os.getenv("STACKEXCHANGE_API_KEY"),
        "Serper": os.getenv("SERPER_API_KEY") or os.getenv("SERP_API_KEY"),
        "Brave Search": os.getenv("BRAVE_SEARCH_API_KEY"),
        "Reddit API": os.getenv("REDDIT_CLIENT_ID"),
    }
    active = [name for name, value in integrations.items() if value]
    if active:
        logger.info(f"Optional integrations: {', '.join(active)}")
    else:
        logger.info("No optional API keys configured; using public endpoints only")

    provider = get_available_llm_provider()
    if provider:
        logger.info(f"LLM analysis via {provider[0]}")
    else:
        logger.info("No LLM provider configured; using template analysis")

    if settings.auth_disabled:
        logger.warning("SKIP_AUTH is set: HTTP requests are not authenticated")
    elif settings.skip_auth:
        logger.warning("SKIP_AUTH ignored outside ENVIRONMENT=development")
    return active


def main() -> None:
    parser = argparse.ArgumentParser(description="Research Engine MCP server")
    parser.add_argument(
        "--http",
        action="store_true",
        help="Serve the HTTP and JSON-RPC API instead of stdio",
    )
    parser.add_argument("--host", help="HTTP bind address (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="HTTP port (default: PORT or 3000)")
    args = parser.parse_args()

    settings = load_config()
    configure_logging(settings.log_level)
    validate_environment(settings)

    if args.http:
        uvicorn.run(
            create_app(settings),
            host=args.host or settings.host,
            port=args.port or settings.port,
            log_level=settings.log_level.lower(),
        )
    else:
        mcp.run()


if __name__ == "__main__":
    main()
