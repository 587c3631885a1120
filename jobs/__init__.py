"""Persistent job queue and the background worker that drains it."""

from jobs.queue import Job, JobQueue
from jobs.worker import ResearchWorker, build_query_context

__all__ = ["Job", "JobQueue", "ResearchWorker", "build_query_context"]
