"""
Job lifecycle tracking.

A JobLifecycle records what happened to one research job while a worker
runs it: status transitions, a bounded message log, per-plugin status and
clamped progress. Terminal transitions happen once.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from core.errors import InvalidTransitionError

__all__ = ["LifecycleStatus", "JobLifecycle", "MAX_MESSAGES", "MAX_ATTEMPTS"]

logger = logging.getLogger(__name__)

MAX_MESSAGES = 100
MAX_ATTEMPTS = 3


class LifecycleStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    PARTIAL_OK = "partial_ok"  # Some plugins failed, others succeeded
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (
            LifecycleStatus.SUCCEEDED,
            LifecycleStatus.FAILED,
            LifecycleStatus.CANCELLED,
        )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobLifecycle:
    def __init__(
        self,
        job_id: str,
        query: str = "",
        attempt: int = 1,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.job_id = job_id
        self.status = LifecycleStatus.QUEUED
        self.percent = 0
        self.current_step = "Queued"
        self.messages: Deque[Dict[str, str]] = deque(maxlen=MAX_MESSAGES)
        self.plugin_statuses: Dict[str, Dict[str, Any]] = {}
        self.result: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None
        self.warnings: List[str] = []
        self.metadata: Dict[str, Any] = {
            "query": query,
            "attempt": attempt,
            "maxAttempts": max_attempts,
            "createdAt": _now(),
        }

    def _log(self, message: str) -> None:
        self.messages.append({"timestamp": _now(), "message": message})
        logger.debug(f"[{self.job_id}] {message}")

    def _ensure_active(self, action: str) -> None:
        if self.status.terminal:
            raise InvalidTransitionError(
                f"Cannot {action} job {self.job_id}: already {self.status.value}"
            )

    def start(self) -> None:
        self._ensure_active("start")
        self.status = LifecycleStatus.RUNNING
        self.metadata["startedAt"] = _now()
        self._log("Job started")

    def update_step(self, message: str, percent: Optional[float] = None) -> None:
        """Record a step; percent is clamped to 0-100 and never decreases."""
        self.current_step = message
        if percent is not None:
            clamped = int(min(max(percent, 0), 100))
            self.percent = max(self.percent, clamped)
        self._log(message)

    def update_plugin_status(self, plugin_id: str, **partial: Any) -> None:
        """Merge partial status fields for one plugin."""
        entry = self.plugin_statuses.setdefault(plugin_id, {"status": "pending"})
        entry.update(partial)
        entry["updatedAt"] = _now()

        status = entry.get("status")
        if status == "failed":
            self._log(f"Plugin {plugin_id} failed: {entry.get('error', 'unknown error')}")
        elif status == "completed":
            self._log(f"Plugin {plugin_id} completed")

        if self.status == LifecycleStatus.RUNNING and self._partially_failed():
            self.status = LifecycleStatus.PARTIAL_OK

    def _partially_failed(self) -> bool:
        statuses = [s.get("status") for s in self.plugin_statuses.values()]
        return "failed" in statuses and "completed" in statuses

    def failed_plugins(self) -> List[str]:
        return [
            plugin_id
            for plugin_id, s in self.plugin_statuses.items()
            if s.get("status") == "failed"
        ]

    def succeed(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Mark the job successful.

        A job whose plugins partly failed still succeeds; the failures are
        returned as warnings alongside the data.
        """
        self._ensure_active("complete")
        self.warnings = [
            f"{plugin_id}: {self.plugin_statuses[plugin_id].get('error', 'failed')}"
            for plugin_id in self.failed_plugins()
        ]
        self.status = LifecycleStatus.SUCCEEDED
        self.percent = 100
        self.result = data
        self.current_step = "Completed"
        self.metadata["completedAt"] = _now()
        self._log(
            "Job completed"
            + (f" with {len(self.warnings)} warning(s)" if self.warnings else "")
        )
        return {"status": self.status.value, "data": data, "warnings": list(self.warnings)}

    def fail(self, error: str) -> None:
        self._ensure_active("fail")
        self.status = LifecycleStatus.FAILED
        self.error = error
        self.current_step = "Failed"
        self.metadata["completedAt"] = _now()
        self._log(f"Job failed: {error}")

    def cancel(self) -> None:
        self._ensure_active("cancel")
        self.status = LifecycleStatus.CANCELLED
        self.current_step = "Cancelled"
        self.metadata["completedAt"] = _now()
        self._log("Job cancelled")

    def get_progress(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "status": self.status.value,
            "progress": self.percent,
            "currentStep": self.current_step,
            "messages": list(self.messages),
            "pluginStatuses": {k: dict(v) for k, v in self.plugin_statuses.items()},
            "warnings": list(self.warnings),
            "error": self.error,
            "metadata": dict(self.metadata),
        }
