"""
Data models for the Research Engine MCP.

Provides Pydantic models for tool input validation and
re-exports the research data model used across plugins.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.config import ESTIMATED_TIME, PHASE_WEIGHTS, Depth, ExportFormat, JobStatus
from models.research import (
    AnalysisMetadata,
    AnalysisResult,
    Document,
    DocumentMetadata,
    Evidence,
    ExportResult,
    Importance,
    Insight,
    PluginError,
    PluginErrorCode,
    PluginResult,
    PluginResultMetadata,
)

__all__ = [
    "Depth",
    "ExportFormat",
    "JobStatus",
    "PHASE_WEIGHTS",
    "ESTIMATED_TIME",
    "ResearchBriefInput",
    "ResearchStatusInput",
    "ResearchExportInput",
    "AnalysisMetadata",
    "AnalysisResult",
    "Document",
    "DocumentMetadata",
    "Evidence",
    "ExportResult",
    "Importance",
    "Insight",
    "PluginError",
    "PluginErrorCode",
    "PluginResult",
    "PluginResultMetadata",
]

DEFAULT_SOURCES = ["github", "reddit"]

# ══════════════════════════════════════════════════════════════════════════════
# Tool Input Models
# ══════════════════════════════════════════════════════════════════════════════


class _ToolInput(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="forbid",
        populate_by_name=True,
    )


class ResearchBriefInput(_ToolInput):
    """Input model for submitting a research brief."""

    brief: str = Field(
        ...,
        description=(
            "The research question or topic. Be specific! "
            "Example: 'Compare FastAPI background task libraries for Redis queues'"
        ),
        min_length=10,
        max_length=2000,
    )

    depth: Depth = Field(
        default=Depth.STANDARD,
        description="Research depth: 'quick', 'standard', or 'deep'",
    )

    sources: Optional[List[str]] = Field(
        default_factory=lambda: list(DEFAULT_SOURCES),
        description=(
            "Plugin ids to query (github, websearch, reddit, stackoverflow). "
            "Pass null to let every plugin decide from the brief."
        ),
    )

    export_format: Optional[ExportFormat] = Field(
        default=None,
        alias="exportFormat",
        description="Export the finished report as 'markdown', 'notion', or 'json'",
    )

    export_credentials: Optional[Dict[str, Any]] = Field(
        default=None,
        alias="exportCredentials",
        description="Credentials for the export target (Notion: token, databaseId)",
    )

    @field_validator("sources")
    @classmethod
    def normalize_sources(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        seen: List[str] = []
        for source in v:
            name = source.strip().lower()
            if name and name not in seen:
                seen.append(name)
        return seen

    @model_validator(mode="after")
    def check_export_credentials(self) -> "ResearchBriefInput":
        """Notion export needs a token and database id up front."""
        if self.export_format == ExportFormat.NOTION:
            creds = self.export_credentials or {}
            token = creds.get("token")
            database_id = creds.get("databaseId") or creds.get("database_id")
            if not token or not database_id:
                raise ValueError(
                    "Notion export requires exportCredentials with 'token' and 'databaseId'"
                )
        return self

    def to_job_data(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @property
    def estimated_time(self) -> str:
        return ESTIMATED_TIME[self.depth]


class ResearchStatusInput(_ToolInput):
    """Input model for checking a research job."""

    job_id: str = Field(
        ...,
        alias="jobId",
        description="Job id returned by research_brief",
        min_length=1,
        max_length=100,
    )


class ResearchExportInput(_ToolInput):
    """Input model for exporting a completed research job."""

    job_id: str = Field(
        ...,
        alias="jobId",
        description="Job id of a completed research job",
        min_length=1,
        max_length=100,
    )

    format: ExportFormat = Field(
        default=ExportFormat.MARKDOWN,
        description="Export format: 'markdown', 'notion', or 'json'",
    )

    credentials: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Credentials for the export target (Notion: token, databaseId)",
    )
