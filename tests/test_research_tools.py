"""Tests for tools/research.py, the service behind every transport."""

import pytest
from pydantic import ValidationError

from conftest import StubSourcePlugin, job_data, make_analysis
from core.errors import RateLimitExceededError, ToolNotFoundError
from jobs.queue import JobQueue
from plugins.exports import BUILTIN_EXPORT_PLUGINS
from plugins.registry import PluginRegistry
from tools.research import TOOL_DEFINITIONS, ResearchService, _job_error

USER = {"id": "user-1", "email": "user@example.com"}


@pytest.fixture
def queue(tmp_path):
    q = JobQueue(str(tmp_path / "jobs.db"))
    yield q
    q.close()


@pytest.fixture
def service(queue, tmp_path):
    registry = PluginRegistry(
        source_factories=[lambda: StubSourcePlugin(plugin_id="github")],
        export_factories=BUILTIN_EXPORT_PLUGINS,
    )
    for factory in BUILTIN_EXPORT_PLUGINS:
        registry.register(factory())
    return ResearchService(queue, registry, export_dir=str(tmp_path / "exports"))


def _completed_job(queue):
    job_id = queue.create_job(job_data())
    queue.get_next_job()
    queue.complete_job(job_id, make_analysis().to_wire())
    return job_id


class TestToolDefinitions:
    def test_three_tools_with_schemas(self, service):
        names = [tool["name"] for tool in service.list_tools()]
        assert names == ["research_brief", "research_status", "research_export"]
        brief_schema = TOOL_DEFINITIONS[0]["inputSchema"]
        assert brief_schema["required"] == ["brief"]
        assert "exportFormat" in brief_schema["properties"]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, service):
        with pytest.raises(ToolNotFoundError, match="Tool not found: research_delete"):
            await service.call_tool("research_delete", {})


class TestResearchBrief:
    @pytest.mark.asyncio
    async def test_queues_job(self, service, queue):
        response = await service.call_tool(
            "research_brief",
            {"brief": "  React deployment issues on Vercel  ", "depth": "quick"},
            user=USER,
        )

        assert response["success"] is True
        assert response["estimatedTime"] == "1-2 minutes"
        assert response["details"]["brief"] == "React deployment issues on Vercel"
        assert response["details"]["sources"] == ["github", "reddit"]
        assert response["jobId"] in response["message"]

        job = queue.get_job(response["jobId"])
        assert job.data["userId"] == "user-1"
        assert job.data["depth"] == "quick"

    @pytest.mark.asyncio
    async def test_sources_normalized(self, service, queue):
        response = await service.research_brief(
            {"brief": "React deployment issues", "sources": [" GitHub", "github", "Reddit"]}
        )
        assert response["details"]["sources"] == ["github", "reddit"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "arguments",
        [
            {"brief": "too short"},
            {"brief": "x" * 2001},
            {"brief": "React deployment issues", "depth": "exhaustive"},
            {"brief": "React deployment issues", "exportFormat": "notion"},
            {"brief": "React deployment issues", "unexpected": True},
        ],
    )
    async def test_invalid_input(self, service, arguments):
        with pytest.raises(ValidationError):
            await service.research_brief(arguments)

    @pytest.mark.asyncio
    async def test_notion_export_with_credentials(self, service):
        response = await service.research_brief(
            {
                "brief": "React deployment issues",
                "export_format": "notion",
                "export_credentials": {"token": "t", "databaseId": "d"},
            }
        )
        assert response["details"]["exportFormat"] == "notion"

    @pytest.mark.asyncio
    async def test_rate_limited_per_user(self, queue):
        service = ResearchService(queue, PluginRegistry(source_factories=[], export_factories=[]), rate_limit=2)
        arguments = {"brief": "React deployment issues"}
        await service.research_brief(arguments, user=USER)
        await service.research_brief(arguments, user=USER)
        with pytest.raises(RateLimitExceededError) as excinfo:
            await service.research_brief(arguments, user=USER)
        assert excinfo.value.retry_in == 60

        # Another caller has its own window
        await service.research_brief(arguments, user={"id": "user-2"})


class TestResearchStatus:
    @pytest.mark.asyncio
    async def test_unknown_job(self, service):
        response = await service.call_tool("research_status", {"jobId": "missing"})
        assert response == {
            "success": False,
            "jobId": "missing",
            "error": "Job not found",
            "message": "Research job not found. Please check the jobId.",
        }

    @pytest.mark.asyncio
    async def test_in_progress(self, service, queue):
        job_id = queue.create_job(job_data())
        queue.get_next_job()
        queue.update_progress(job_id, 45, "Collecting data", data={"phase": "data_collection"})

        response = await service.research_status({"job_id": job_id})
        assert response["status"] == "processing"
        assert response["message"] == "Research in progress (45% complete)"
        assert response["details"] == {"phase": "data_collection"}
        assert response["startedAt"] is not None

    @pytest.mark.asyncio
    async def test_completed(self, service, queue):
        job_id = _completed_job(queue)
        response = await service.research_status({"jobId": job_id})
        assert response["success"] is True
        assert response["progress"] == 100
        assert response["result"]["summary"].startswith("Deployments fail")
        assert response["completedAt"] is not None

    @pytest.mark.asyncio
    async def test_failed(self, service, queue):
        job_id = queue.create_job(job_data())
        queue.get_next_job()
        queue.fail_job(job_id, "No plugins available for this query")

        response = await service.research_status({"jobId": job_id})
        assert response["success"] is False
        assert response["error"] == {
            "code": "USER_ERROR",
            "message": "No plugins available for this query",
        }


@pytest.mark.parametrize(
    "message,code,retry_in",
    [
        ("Invalid query for GitHub: too long", "USER_ERROR", None),
        ("Reddit rate limit exceeded", "TEMP_ERROR", 300),
        ("Request timed out", "TEMP_ERROR", 60),
        ("No documents collected from any source", "PERM_ERROR", None),
    ],
)
def test_job_error_classification(message, code, retry_in):
    error = _job_error(message)
    assert error["code"] == code
    assert error.get("retryIn") == retry_in


class TestResearchExport:
    @pytest.mark.asyncio
    async def test_not_completed(self, service, queue):
        job_id = queue.create_job(job_data())
        response = await service.research_export({"jobId": job_id, "format": "json"})
        assert response["success"] is False
        assert response["currentStatus"] == "pending"
        assert "Please wait for completion" in response["message"]

    @pytest.mark.asyncio
    async def test_json_export(self, service, queue):
        job_id = _completed_job(queue)
        response = await service.research_export({"jobId": job_id, "format": "json"})
        assert response["success"] is True
        assert response["message"] == "Research exported successfully as json!"
        assert response["data"]["query"] == "react deployment issues"

    @pytest.mark.asyncio
    async def test_markdown_export_writes_file(self, service, queue, tmp_path):
        job_id = _completed_job(queue)
        response = await service.research_export({"jobId": job_id})
        assert response["format"] == "markdown"
        assert response["location"].startswith(str(tmp_path / "exports"))

    @pytest.mark.asyncio
    async def test_notion_without_credentials(self, service, queue):
        job_id = _completed_job(queue)
        response = await service.research_export({"jobId": job_id, "format": "notion"})
        assert response["success"] is False
        assert response["error"] == "Invalid export configuration"

    @pytest.mark.asyncio
    async def test_unknown_job(self, service):
        response = await service.research_export({"jobId": "missing"})
        assert response["error"] == "Job not found"
