"""Runtime types passed between the registry, orchestrator and plugins."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from models.config import Depth, ExportFormat
from models.research import PluginError, PluginResult

__all__ = [
    "ProgressCallback",
    "QueryContext",
    "PluginContext",
    "ExportContext",
    "PluginExecutionStatus",
    "PluginExecutionResult",
    "PluginStats",
]

ProgressCallback = Callable[[float, Optional[str]], None]


def _noop_progress(percent: float, message: Optional[str] = None) -> None:
    return None


@dataclass
class QueryContext:
    """What the caller asked for, independent of any single plugin."""

    depth: Depth = Depth.STANDARD
    # None lets plugins decide from the query; [] selects nothing
    sources: Optional[List[str]] = None
    export_format: Optional[ExportFormat] = None
    export_credentials: Optional[Dict[str, Any]] = None
    export_options: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None


@dataclass
class PluginContext:
    """Everything a source plugin needs for one search."""

    query: str
    depth: Depth = Depth.STANDARD
    job_id: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    update_progress: ProgressCallback = _noop_progress


@dataclass
class ExportContext:
    format: ExportFormat
    credentials: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)


class PluginExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class PluginExecutionResult:
    plugin_id: str
    status: PluginExecutionStatus = PluginExecutionStatus.PENDING
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    result: Optional[PluginResult] = None
    error: Optional[PluginError] = None

    @property
    def duration(self) -> int:
        """Elapsed milliseconds, 0 while still running."""
        if self.end_time is None:
            return 0
        return int((self.end_time - self.start_time) * 1000)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "pluginId": self.plugin_id,
            "status": self.status.value,
            "duration": self.duration,
            "documentsFound": len(self.result.documents) if self.result else 0,
        }
        if self.error is not None:
            data["error"] = self.error.to_wire()
        return data


@dataclass
class PluginStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    avg_duration: float = 0.0
    last_error: Optional[str] = None

    def record(self, success: bool, duration: float, error: Optional[str] = None) -> None:
        self.total_calls += 1
        if success:
            self.successful_calls += 1
        else:
            self.failed_calls += 1
            self.last_error = error
        # Rolling mean over all calls
        self.avg_duration += (duration - self.avg_duration) / self.total_calls

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalCalls": self.total_calls,
            "successfulCalls": self.successful_calls,
            "failedCalls": self.failed_calls,
            "avgDuration": round(self.avg_duration, 1),
            "lastError": self.last_error,
        }

