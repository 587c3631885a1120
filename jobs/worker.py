"""
Background research worker.

Polls the SQLite queue, runs up to ``max_concurrent_jobs`` research jobs at
once and writes their progress, results and errors back to the queue.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Set

from core.lifecycle import JobLifecycle
from core.progress import ProgressState
from jobs.queue import Job, JobQueue
from models.config import Depth, ExportFormat
from plugins.orchestrator import ResearchOrchestrator
from plugins.types import QueryContext

__all__ = ["ResearchWorker", "build_query_context"]

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = 3600  # seconds between retention sweeps


def build_query_context(data: Dict[str, Any], export_dir: Optional[str] = None) -> QueryContext:
    """Translate stored job data into the orchestrator's QueryContext."""
    export_format = data.get("exportFormat")
    options: Dict[str, Any] = {}
    if export_dir:
        options["output_dir"] = export_dir
    return QueryContext(
        depth=Depth(data.get("depth") or Depth.STANDARD.value),
        sources=data.get("sources"),
        export_format=ExportFormat(export_format) if export_format else None,
        export_credentials=data.get("exportCredentials"),
        export_options=options,
        user_id=data.get("userId"),
    )


def _merge_warnings(*groups: List[str]) -> List[str]:
    merged: List[str] = []
    for group in groups:
        for warning in group:
            if warning not in merged:
                merged.append(warning)
    return merged


class ResearchWorker:
    def __init__(
        self,
        queue: JobQueue,
        orchestrator: ResearchOrchestrator,
        max_concurrent_jobs: int = 3,
        poll_interval: float = 1.0,
        retention_days: int = 7,
        export_dir: Optional[str] = None,
    ):
        self.queue = queue
        self.orchestrator = orchestrator
        self.max_concurrent_jobs = max(max_concurrent_jobs, 1)
        self.poll_interval = poll_interval
        self.retention_days = retention_days
        self.export_dir = export_dir
        self._semaphore = asyncio.Semaphore(self.max_concurrent_jobs)
        self._running = False
        self._poll_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._active: Set[asyncio.Task] = set()
        self._last_cleanup = 0.0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def active_jobs(self) -> int:
        return len(self._active)

    async def start(self) -> None:
        if self._running:
            logger.warning("Research worker already running")
            return
        recovered = await asyncio.to_thread(self.queue.recover_stale_jobs)
        if recovered:
            logger.info(f"Requeued {recovered} stale jobs")
        self._running = True
        self._stop_event = asyncio.Event()
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info(
            f"Research worker started (max {self.max_concurrent_jobs} jobs, "
            f"poll every {self.poll_interval}s)"
        )

    async def stop(self) -> None:
        """Stop polling and wait for in-flight jobs to finish.

        The poll loop is never cancelled: a claim already running in its
        thread commits, so the loop is left to dispatch that job and exit
        on its own.
        """
        if not self._running:
            return
        self._running = False
        self._stop_event.set()
        if self._poll_task is not None:
            await self._poll_task
            self._poll_task = None
        if self._active:
            logger.info(f"Waiting for {len(self._active)} active jobs")
            await asyncio.gather(*self._active, return_exceptions=True)
        logger.info("Research worker stopped")

    # ══════════════════════════════════════════════════════════════════════
    # Polling
    # ══════════════════════════════════════════════════════════════════════

    async def _poll_loop(self) -> None:
        while self._running:
            await self._maybe_cleanup()
            await self._semaphore.acquire()
            job: Optional[Job] = None
            try:
                if self._running:
                    job = await asyncio.to_thread(self.queue.get_next_job)
            except Exception as e:
                logger.error(f"Failed to poll job queue: {e}")
            finally:
                # The permit passes to the job task only once a job is claimed
                if job is None:
                    self._semaphore.release()

            if job is None:
                await self._idle(self.poll_interval)
                continue

            task = asyncio.create_task(self._run_claimed(job))
            self._active.add(task)
            task.add_done_callback(self._active.discard)

    async def _idle(self, seconds: float) -> None:
        """Sleep between polls, waking early when the worker is stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _run_claimed(self, job: Job) -> None:
        try:
            await self.process_job(job)
        except Exception as e:
            logger.error(f"Unhandled error processing job {job.id}: {e}")
        finally:
            self._semaphore.release()

    async def _maybe_cleanup(self) -> None:
        now = time.monotonic()
        if self._last_cleanup and now - self._last_cleanup < CLEANUP_INTERVAL:
            return
        self._last_cleanup = now
        try:
            await asyncio.to_thread(self.queue.cleanup_old_jobs, self.retention_days)
        except Exception as e:
            logger.warning(f"Job cleanup failed: {e}")

    # ══════════════════════════════════════════════════════════════════════
    # Job execution
    # ══════════════════════════════════════════════════════════════════════

    async def process_job(self, job: Job) -> None:
        """Run one claimed job to a terminal state."""
        data = job.data
        brief = data.get("brief", "")
        lifecycle = JobLifecycle(
            job.id,
            query=brief,
            attempt=job.attempts,
            max_attempts=self.queue.max_attempts,
        )
        lifecycle.start()
        logger.info(f"Processing job {job.id}: {brief[:80]}")

        channel: "asyncio.Queue[Optional[ProgressState]]" = asyncio.Queue()
        writer = asyncio.create_task(self._write_progress(job.id, channel, lifecycle))

        try:
            context = build_query_context(data, self.export_dir)
            research = await self.orchestrator.execute_research(
                brief,
                context,
                job.id,
                progress=channel,
                lifecycle=lifecycle,
            )
            outcome = lifecycle.succeed(research.to_job_result())
            result = outcome["data"]
            result["warnings"] = _merge_warnings(result.get("warnings", []), outcome["warnings"])
        except Exception as e:
            error = str(e) or type(e).__name__
            lifecycle.fail(error)
            await self._close_channel(channel, writer)
            await asyncio.to_thread(self.queue.fail_job, job.id, error)
            return

        await self._close_channel(channel, writer)
        await asyncio.to_thread(self.queue.complete_job, job.id, result)
        if result["warnings"]:
            logger.warning(f"Job {job.id} completed with warnings: {result['warnings']}")

    async def _write_progress(
        self,
        job_id: str,
        channel: "asyncio.Queue[Optional[ProgressState]]",
        lifecycle: JobLifecycle,
    ) -> None:
        """Persist progress snapshots until the channel is closed with None."""
        while True:
            state = await channel.get()
            done = state is None
            # Coalesce bursts into the latest snapshot
            while not done and not channel.empty():
                nxt = channel.get_nowait()
                if nxt is None:
                    done = True
                else:
                    state = nxt
            if state is not None:
                lifecycle.update_step(state.message, state.progress)
                try:
                    await asyncio.to_thread(
                        self.queue.update_progress,
                        job_id,
                        state.progress,
                        state.message,
                        state.to_dict(),
                    )
                except Exception as e:
                    logger.warning(f"Failed to persist progress for job {job_id}: {e}")
            if done:
                return

    @staticmethod
    async def _close_channel(
        channel: "asyncio.Queue[Optional[ProgressState]]", writer: asyncio.Task
    ) -> None:
        channel.put_nowait(None)
        await writer
