"""
Weighted progress tracking for a research run.

A run moves through four phases with fixed weights. Each phase reports
its own 0-100 completion; during data collection that completion is the
mean of the per-plugin percentages, so every plugin owns an equal slice
of the collection weight. Snapshots are published to an asyncio.Queue
consumed by whoever persists or streams them.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.config import PHASE_WEIGHTS

__all__ = ["PhaseState", "ProgressState", "ProgressTracker"]

logger = logging.getLogger(__name__)


@dataclass
class PhaseState:
    name: str
    weight: int
    status: str = "pending"  # pending, running, completed, skipped
    percent: float = 0.0


@dataclass
class ProgressState:
    """Point-in-time snapshot published to progress subscribers."""

    job_id: str
    status: str
    progress: int
    message: str
    phase: Optional[str] = None
    phases: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    plugin_progress: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "jobId": self.job_id,
            "status": self.status,
            "progress": self.progress,
            "message": self.message,
            "phase": self.phase,
            "phases": self.phases,
            "pluginProgress": self.plugin_progress,
        }
        if self.error:
            data["error"] = self.error
        return data


class ProgressTracker:
    def __init__(
        self,
        job_id: str,
        channel: Optional["asyncio.Queue[ProgressState]"] = None,
    ):
        self.job_id = job_id
        self.channel = channel
        self.phases = {
            name: PhaseState(name=name, weight=weight)
            for name, weight in PHASE_WEIGHTS.items()
        }
        self.plugin_progress: Dict[str, float] = {}
        self.status = "running"
        self.message = "Starting research"
        self.current_phase: Optional[str] = None
        self.error: Optional[str] = None
        self._progress = 0

    # ── phases ───────────────────────────────────────────────────────────────

    def start_phase(self, name: str, message: str) -> None:
        phase = self.phases[name]
        phase.status = "running"
        self.current_phase = name
        self.message = message
        self._publish()

    def update_phase(self, name: str, percent: float, message: Optional[str] = None) -> None:
        phase = self.phases[name]
        phase.percent = max(phase.percent, min(max(percent, 0.0), 100.0))
        if message:
            self.message = message
        self._publish()

    def complete_phase(self, name: str, message: Optional[str] = None) -> None:
        phase = self.phases[name]
        phase.status = "completed"
        phase.percent = 100.0
        if message:
            self.message = message
        self._publish()

    def skip_phase(self, name: str, message: Optional[str] = None) -> None:
        phase = self.phases[name]
        phase.status = "skipped"
        phase.percent = 100.0
        if message:
            self.message = message
        self._publish()

    # ── plugins ──────────────────────────────────────────────────────────────

    def set_plugins(self, plugin_ids: List[str]) -> None:
        self.plugin_progress = {plugin_id: 0.0 for plugin_id in plugin_ids}

    def update_plugin(self, plugin_id: str, percent: float, message: Optional[str] = None) -> None:
        """Record a plugin's own 0-100 progress; never moves backwards."""
        current = self.plugin_progress.get(plugin_id, 0.0)
        self.plugin_progress[plugin_id] = max(current, min(max(percent, 0.0), 100.0))

        collection = self.phases["data_collection"]
        if self.plugin_progress:
            collection.percent = max(
                collection.percent,
                sum(self.plugin_progress.values()) / len(self.plugin_progress),
            )
        if message:
            self.message = message
        self._publish()

    # ── terminal ─────────────────────────────────────────────────────────────

    def complete(self, message: str = "Research completed") -> None:
        for phase in self.phases.values():
            if phase.status in ("pending", "running"):
                phase.status = "completed"
            phase.percent = 100.0
        self.status = "completed"
        self.message = message
        self._publish()

    def fail(self, error: str) -> None:
        if self.current_phase:
            self.phases[self.current_phase].status = "failed"
        self.status = "failed"
        self.error = error
        self.message = f"Research failed: {error}"
        self._publish()

    # ── snapshots ────────────────────────────────────────────────────────────

    @property
    def progress(self) -> int:
        return self._progress

    def _compute(self) -> int:
        total = sum(p.weight * p.percent / 100.0 for p in self.phases.values())
        return int(min(max(total, 0.0), 100.0))

    def get_state(self) -> ProgressState:
        return ProgressState(
            job_id=self.job_id,
            status=self.status,
            progress=self._progress,
            message=self.message,
            phase=self.current_phase,
            phases={
                name: {
                    "weight": p.weight,
                    "status": p.status,
                    "progress": int(p.percent),
                }
                for name, p in self.phases.items()
            },
            plugin_progress={k: int(v) for k, v in self.plugin_progress.items()},
            error=self.error,
        )

    def _publish(self) -> None:
        # Clamp so subscribers never observe progress going backwards
        self._progress = max(self._progress, self._compute())
        if self.channel is None:
            return
        try:
            self.channel.put_nowait(self.get_state())
        except asyncio.QueueFull:
            logger.debug(f"Progress channel full for job {self.job_id}, dropping update")
