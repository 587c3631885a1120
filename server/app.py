"""
HTTP transport for the Research Engine.

FastAPI application exposing the MCP JSON-RPC endpoint, REST tool routes,
job status and a server-sent event stream of job progress. The worker
that drains the job queue runs inside the application lifespan.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.analysis import Analyzer
from core.config import Settings, load_config
from core.errors import JobNotFoundError, RateLimitExceededError
from jobs.queue import JobQueue
from jobs.worker import ResearchWorker
from models.config import JobStatus
from plugins.orchestrator import ResearchOrchestrator
from plugins.registry import PluginRegistry
from server.auth import Authenticator
from server.jsonrpc import (
    PARSE_ERROR,
    SERVER_INFO,
    JsonRpcDispatcher,
    error_response,
    validation_message,
)
from tools.research import ResearchService

__all__ = ["create_app", "SERVICE_NAME", "MCP_DESCRIPTOR"]

logger = logging.getLogger(__name__)

SERVICE_NAME = "research-engine-mcp"

MCP_DESCRIPTOR = {
    "schemaVersion": "2024-11-05",
    "vendor": "Commands.com",
    "name": SERVER_INFO["name"],
    "version": SERVER_INFO["version"],
    "description": "AI-powered research automation",
    "license": "MIT",
    "capabilities": {"tools": {"listChanged": True}},
    "serverInfo": dict(SERVER_INFO),
}


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[PluginRegistry] = None,
    queue: Optional[JobQueue] = None,
    analyzer: Optional[Analyzer] = None,
    start_worker: bool = True,
    authenticator: Optional[Authenticator] = None,
) -> FastAPI:
    """Build the application and wire its collaborators."""
    settings = settings or load_config()
    registry = registry or PluginRegistry(plugin_dir=settings.plugin_dir)
    queue = queue or JobQueue(settings.db_path, max_attempts=settings.job_max_attempts)
    orchestrator = ResearchOrchestrator(
        registry, analyzer=analyzer, max_concurrency=settings.max_concurrent_plugins
    )
    worker = ResearchWorker(
        queue,
        orchestrator,
        max_concurrent_jobs=settings.max_concurrent_jobs,
        poll_interval=settings.poll_interval,
        retention_days=settings.job_retention_days,
        export_dir=settings.export_dir,
    )
    service = ResearchService(queue, registry, export_dir=settings.export_dir)
    authenticator = authenticator or Authenticator(settings)
    dispatcher = JsonRpcDispatcher(service, authenticator)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not registry.initialized:
            await registry.initialize()
        if start_worker:
            await worker.start()
        logger.info(f"Research Engine MCP ready on {settings.host}:{settings.port}")
        try:
            yield
        finally:
            await worker.stop()
            await registry.dispose()
            queue.close()
            logger.info("Research Engine MCP shut down")

    app = FastAPI(
        title="Research Engine MCP",
        description="AI-powered research automation",
        version=SERVER_INFO["version"],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.queue = queue
    app.state.worker = worker
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ══════════════════════════════════════════════════════════════════════
    # Error bodies
    # ══════════════════════════════════════════════════════════════════════

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            {"error": exc.detail},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {exc}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    # ══════════════════════════════════════════════════════════════════════
    # Discovery
    # ══════════════════════════════════════════════════════════════════════

    @app.get("/")
    async def root() -> Dict[str, Any]:
        return {
            "name": SERVER_INFO["name"],
            "description": "AI-powered research automation",
            "version": SERVER_INFO["version"],
            "endpoints": {
                "health": "/health",
                "discovery": "/.well-known/mcp.json",
                "tools": "/mcp/tools",
                "execute": "/mcp/tools/{toolName}",
                "plugins": "/mcp/plugins",
                "status": "/research/{jobId}",
                "stream": "/research/{jobId}/stream",
                "mcp": "/",
            },
        }

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok", "service": SERVICE_NAME}

    @app.get("/.well-known/mcp.json")
    async def mcp_descriptor() -> Dict[str, Any]:
        return MCP_DESCRIPTOR

    # ══════════════════════════════════════════════════════════════════════
    # Tools
    # ══════════════════════════════════════════════════════════════════════

    @app.get("/mcp/tools")
    async def list_tools(user: Dict[str, Any] = Depends(authenticator)) -> Dict[str, Any]:
        return {"tools": service.list_tools()}

    @app.post("/mcp/tools/{tool_name}")
    async def execute_tool(
        tool_name: str,
        request: Request,
        user: Dict[str, Any] = Depends(authenticator),
    ):
        if not service.has_tool(tool_name):
            raise HTTPException(status_code=404, detail=f"Tool {tool_name} not found")

        try:
            arguments = await request.json()
        except ValueError:
            arguments = {}
        if not isinstance(arguments, dict):
            raise HTTPException(status_code=400, detail="Tool arguments must be a JSON object")

        try:
            return await service.call_tool(tool_name, arguments, user=user)
        except ValidationError as e:
            return JSONResponse({"error": validation_message(e)}, status_code=400)
        except RateLimitExceededError as e:
            return JSONResponse(
                {"error": str(e), "retryIn": e.retry_in},
                status_code=429,
                headers={"Retry-After": str(e.retry_in)},
            )
        except Exception as e:
            logger.error(f"Tool {tool_name} failed: {e}")
            return JSONResponse({"error": str(e) or "Tool execution failed"}, status_code=500)

    @app.get("/mcp/plugins")
    async def list_plugins(user: Dict[str, Any] = Depends(authenticator)) -> Dict[str, Any]:
        description = registry.describe()
        description["jobs"] = await asyncio.to_thread(queue.count_by_status)
        return description

    # ══════════════════════════════════════════════════════════════════════
    # Jobs
    # ══════════════════════════════════════════════════════════════════════

    @app.get("/research/{job_id}")
    async def job_status(job_id: str, user: Dict[str, Any] = Depends(authenticator)):
        try:
            job = await asyncio.to_thread(queue.require_job, job_id)
        except JobNotFoundError:
            raise HTTPException(status_code=404, detail="Job not found")
        return await service.describe_job(job)

    @app.get("/research/{job_id}/stream")
    async def job_stream(
        job_id: str,
        request: Request,
        user: Dict[str, Any] = Depends(authenticator),
    ):
        if await asyncio.to_thread(queue.get_job, job_id) is None:
            raise HTTPException(status_code=404, detail="Job not found")

        async def event_generator():
            while True:
                if await request.is_disconnected():
                    logger.debug(f"Stream client for job {job_id} disconnected")
                    return

                job = await asyncio.to_thread(queue.get_job, job_id)
                if job is None:
                    yield {
                        "event": "failed",
                        "data": json.dumps({"jobId": job_id, "error": "Job not found"}),
                    }
                    return

                if job.status == JobStatus.COMPLETED:
                    yield {
                        "event": "completed",
                        "data": json.dumps(await service.describe_job(job)),
                    }
                    return

                if job.status == JobStatus.FAILED:
                    yield {
                        "event": "failed",
                        "data": json.dumps(await service.describe_job(job)),
                    }
                    return

                details = await asyncio.to_thread(queue.get_job_progress, job_id)
                yield {
                    "event": "progress",
                    "data": json.dumps(
                        {
                            "jobId": job.id,
                            "status": job.status.value,
                            "progress": job.progress,
                            "currentStep": job.current_step,
                            "details": details,
                        }
                    ),
                }
                await asyncio.sleep(settings.poll_interval)

        return EventSourceResponse(event_generator())

    # ══════════════════════════════════════════════════════════════════════
    # MCP JSON-RPC
    # ══════════════════════════════════════════════════════════════════════

    @app.post("/")
    async def jsonrpc(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse(error_response(None, PARSE_ERROR, "Parse error"))

        response = await dispatcher.dispatch(payload, request.headers.get("authorization"))
        if response is None:
            return Response(status_code=202)
        return JSONResponse(response)

    return app
