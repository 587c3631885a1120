"""
Research data models.

Documents collected by source plugins, the analysis produced from them,
and the result envelopes returned by plugins. All models serialise with
camelCase aliases so stored job payloads keep a stable wire shape.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

__all__ = [
    "Importance",
    "PluginErrorCode",
    "DocumentMetadata",
    "Document",
    "Evidence",
    "Insight",
    "AnalysisMetadata",
    "AnalysisResult",
    "PluginError",
    "PluginResultMetadata",
    "PluginResult",
    "ExportResult",
    "utc_now",
    "new_id",
]


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str = "") -> str:
    value = uuid.uuid4().hex
    return f"{prefix}-{value}" if prefix else value


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Dump as JSON-ready data using camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ══════════════════════════════════════════════════════════════════════════════
# Enums
# ══════════════════════════════════════════════════════════════════════════════


class Importance(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PluginErrorCode(str, Enum):
    """Failure taxonomy shared by every plugin."""

    USER_ERROR = "USER_ERROR"  # Bad input, not retryable
    TEMP_ERROR = "TEMP_ERROR"  # Rate limit or transient network failure
    PERM_ERROR = "PERM_ERROR"  # Everything else


# ══════════════════════════════════════════════════════════════════════════════
# Documents and Analysis
# ══════════════════════════════════════════════════════════════════════════════


class DocumentMetadata(_WireModel):
    model_config = ConfigDict(extra="allow")

    source: str
    timestamp: str = Field(default_factory=utc_now)
    relevance_score: Optional[float] = None


class Document(_WireModel):
    """A single piece of content returned by a source plugin."""

    id: str
    title: str
    content: str = ""
    url: Optional[str] = None
    metadata: DocumentMetadata

    @property
    def source(self) -> str:
        return self.metadata.source

    @property
    def relevance(self) -> float:
        return self.metadata.relevance_score or 0.0


class Evidence(_WireModel):
    document_id: str
    excerpt: str


class Insight(_WireModel):
    id: str
    category: str
    title: str
    description: str
    importance: Importance = Importance.MEDIUM
    evidence: List[Evidence] = Field(default_factory=list)


class AnalysisMetadata(_WireModel):
    total_documents: int
    analysis_duration: int
    confidence: float = Field(ge=0.0, le=1.0)
    timestamp: str = Field(default_factory=utc_now)
    provider: str = "template"


class AnalysisResult(_WireModel):
    """Synthesised findings for one research query. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("analysis"))
    query: str
    summary: str
    insights: List[Insight] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    sources: List[Document] = Field(default_factory=list)
    metadata: AnalysisMetadata


# ══════════════════════════════════════════════════════════════════════════════
# Plugin Envelopes
# ══════════════════════════════════════════════════════════════════════════════


class PluginError(_WireModel):
    code: PluginErrorCode
    message: str
    retry_in: Optional[int] = None
    details: Optional[Dict[str, Any]] = None

    @property
    def retryable(self) -> bool:
        return self.code == PluginErrorCode.TEMP_ERROR


class PluginResultMetadata(_WireModel):
    source: str
    documents_found: int = 0
    duration: int = 0
    cached: bool = False


class PluginResult(_WireModel):
    success: bool
    documents: List[Document] = Field(default_factory=list)
    metadata: PluginResultMetadata
    error: Optional[PluginError] = None


class ExportResult(_WireModel):
    success: bool
    format: str
    location: Optional[str] = None
    data: Optional[Any] = None
    error: Optional[str] = None
