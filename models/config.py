"""Configuration enums and constants for the Research Engine."""

from enum import Enum


class Depth(str, Enum):
    """Research depth; scales per-source result limits and analysis budget."""

    QUICK = "quick"  # Few results, small prompt
    STANDARD = "standard"  # Default
    DEEP = "deep"  # Most results, largest prompt


class ExportFormat(str, Enum):
    """Report formats supported by the export plugins."""

    MARKDOWN = "markdown"
    NOTION = "notion"
    JSON = "json"


class JobStatus(str, Enum):
    """Persisted job states in the queue table."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Progress weights per orchestration phase; they sum to 100
PHASE_WEIGHTS = {
    "plugin_discovery": 5,
    "data_collection": 40,
    "analysis": 40,
    "export": 15,
}

# Rough wall-clock estimates reported back to callers
ESTIMATED_TIME = {
    Depth.QUICK: "1-2 minutes",
    Depth.STANDARD: "3-5 minutes",
    Depth.DEEP: "5-10 minutes",
}

# Display names for source plugin ids
SOURCE_LABELS = {
    "github": "GitHub",
    "websearch": "Web Search",
    "reddit": "Reddit",
    "stackoverflow": "Stack Overflow",
}
