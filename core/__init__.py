"""
Core services for the Research Engine MCP.

    Errors        Domain exceptions and the plugin error classifier
    Reliability   Circuit breakers and retry with backoff
    Progress      Weighted phase progress published to a channel
    Lifecycle     Per-job status, messages and plugin outcomes
    Analysis      LLM analysis with a template fallback
    Dedup         Cross-source document deduplication
"""

from core.analysis import Analyzer, compute_confidence, select_sources
from core.dedup import deduplicate_documents
from core.errors import (
    AnalysisError,
    AuthError,
    CircuitOpenError,
    InvalidQueryError,
    InvalidTransitionError,
    JobNotFoundError,
    NoDocumentsError,
    NoPluginsAvailableError,
    RateLimitExceededError,
    ResearchEngineError,
    ToolNotFoundError,
    classify_error,
    describe_error,
)
from core.lifecycle import JobLifecycle, LifecycleStatus
from core.progress import ProgressState, ProgressTracker
from core.reliability import CircuitBreaker, CircuitState, RetryStrategy, retry_async

__all__ = [
    # Errors
    "ResearchEngineError",
    "InvalidQueryError",
    "NoPluginsAvailableError",
    "NoDocumentsError",
    "AnalysisError",
    "CircuitOpenError",
    "JobNotFoundError",
    "InvalidTransitionError",
    "AuthError",
    "ToolNotFoundError",
    "RateLimitExceededError",
    "classify_error",
    "describe_error",
    # Reliability
    "CircuitBreaker",
    "CircuitState",
    "RetryStrategy",
    "retry_async",
    # Progress and lifecycle
    "ProgressState",
    "ProgressTracker",
    "JobLifecycle",
    "LifecycleStatus",
    # Analysis
    "Analyzer",
    "compute_confidence",
    "select_sources",
    "deduplicate_documents",
]
