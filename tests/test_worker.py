"""End-to-end tests for jobs/worker.py with stub source plugins."""

import asyncio
import threading
import time
from pathlib import Path

import pytest

from conftest import StubSourcePlugin, job_data, make_document
from core.analysis import Analyzer
from jobs.queue import JobQueue
from jobs.worker import ResearchWorker, build_query_context
from models.config import Depth, ExportFormat, JobStatus
from plugins.exports import BUILTIN_EXPORT_PLUGINS
from plugins.orchestrator import ResearchOrchestrator
from plugins.registry import PluginRegistry


@pytest.fixture
def queue(tmp_path):
    q = JobQueue(str(tmp_path / "jobs.db"))
    yield q
    q.close()


async def _worker(queue, *plugins, **kwargs):
    registry = PluginRegistry(
        source_factories=[lambda p=p: p for p in plugins],
        export_factories=BUILTIN_EXPORT_PLUGINS,
    )
    await registry.initialize()
    orchestrator = ResearchOrchestrator(registry, analyzer=Analyzer(use_llm=False))
    return ResearchWorker(queue, orchestrator, **kwargs)


def _github(**kwargs):
    documents = [
        make_document("1", title="Vercel build fails", relevance=0.9),
        make_document("2", title="Env vars missing in CI", relevance=0.7),
        make_document("3", title="Next.js deployment guide", relevance=0.5),
    ]
    return StubSourcePlugin(plugin_id="github", documents=documents, **kwargs)


def test_build_query_context():
    context = build_query_context(
        {
            "depth": "deep",
            "sources": ["github"],
            "exportFormat": "markdown",
            "exportCredentials": {"token": "t"},
            "userId": "user-1",
        },
        export_dir="/tmp/reports",
    )
    assert context.depth == Depth.DEEP
    assert context.sources == ["github"]
    assert context.export_format == ExportFormat.MARKDOWN
    assert context.export_options == {"output_dir": "/tmp/reports"}
    assert context.user_id == "user-1"

    defaults = build_query_context({})
    assert defaults.depth == Depth.STANDARD
    assert defaults.sources is None
    assert defaults.export_format is None


class TestProcessJob:
    @pytest.mark.asyncio
    async def test_successful_job(self, queue):
        worker = await _worker(queue, _github())
        job_id = queue.create_job(job_data())
        await worker.process_job(queue.get_next_job())

        job = queue.get_job(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert len(job.result["sources"]) == 3
        assert job.result["summary"]
        assert job.result["plugins"][0]["status"] == "completed"
        assert job.result["warnings"] == []
        assert queue.get_job_progress(job_id)["jobId"] == job_id

    @pytest.mark.asyncio
    async def test_no_plugins_fails_job(self, queue):
        worker = await _worker(queue, _github())
        job_id = queue.create_job(job_data(sources=[]))
        await worker.process_job(queue.get_next_job())

        job = queue.get_job(job_id)
        assert job.status == JobStatus.FAILED
        assert job.error == "No plugins available for this query"
        assert job.result is None

    @pytest.mark.asyncio
    async def test_partial_failure_completes_with_warnings(self, queue):
        reddit = StubSourcePlugin(plugin_id="reddit", error=ValueError("subreddit banned"))
        worker = await _worker(queue, _github(), reddit)
        job_id = queue.create_job(job_data(sources=["github", "reddit"]))
        await worker.process_job(queue.get_next_job())

        job = queue.get_job(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.result["warnings"]
        assert all(w.startswith("reddit:") for w in job.result["warnings"])

    @pytest.mark.asyncio
    async def test_markdown_export(self, queue, tmp_path):
        export_dir = tmp_path / "exports"
        worker = await _worker(queue, _github(), export_dir=str(export_dir))
        job_id = queue.create_job(job_data(exportFormat="markdown"))
        await worker.process_job(queue.get_next_job())

        export = queue.get_job(job_id).result["export"]
        assert export["success"] is True
        assert Path(export["location"]).parent == export_dir
        assert Path(export["location"]).exists()


class TestWorkerLoop:
    @pytest.mark.asyncio
    async def test_start_recovers_and_processes_jobs(self, queue):
        stale = queue.create_job(job_data())
        queue.get_next_job()  # Left processing by a previous worker
        fresh = queue.create_job(job_data())

        worker = await _worker(queue, _github(), poll_interval=0.01)
        await worker.start()
        assert worker.running
        try:
            for _ in range(300):
                statuses = {queue.get_job(j).status for j in (stale, fresh)}
                if statuses == {JobStatus.COMPLETED}:
                    break
                await asyncio.sleep(0.01)
        finally:
            await worker.stop()

        assert not worker.running
        assert queue.get_job(stale).status == JobStatus.COMPLETED
        assert queue.get_job(stale).attempts == 2
        assert queue.get_job(fresh).status == JobStatus.COMPLETED
        assert worker.active_jobs == 0

    @pytest.mark.asyncio
    async def test_stop_during_claim_dispatches_claimed_job(self, queue):
        job_id = queue.create_job(job_data())
        claimed = threading.Event()
        claim = queue.get_next_job

        def slow_claim():
            job = claim()
            if job is not None:
                claimed.set()
                time.sleep(0.2)
            return job

        queue.get_next_job = slow_claim
        worker = await _worker(queue, _github(), max_concurrent_jobs=1, poll_interval=0.01)
        await worker.start()
        for _ in range(200):
            if claimed.is_set():
                break
            await asyncio.sleep(0.005)
        assert claimed.is_set()

        await worker.stop()

        job = queue.get_job(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 1
        assert not worker._semaphore.locked()
        assert worker.active_jobs == 0

    @pytest.mark.asyncio
    async def test_stop_wakes_idle_poll_loop(self, queue):
        worker = await _worker(queue, _github(), poll_interval=30)
        await worker.start()
        await asyncio.sleep(0.05)

        await asyncio.wait_for(worker.stop(), timeout=2)

        assert not worker.running
        assert not worker._semaphore.locked()
