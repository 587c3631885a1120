"""
Error taxonomy for the Research Engine.

Domain exceptions raised by the orchestrator, queue and server layers,
plus the classifier that maps arbitrary plugin failures onto the
USER_ERROR / TEMP_ERROR / PERM_ERROR taxonomy.
"""

import logging
from typing import Optional

import httpx

from models.research import PluginError, PluginErrorCode

__all__ = [
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
    "RATE_LIMIT_RETRY_SECONDS",
    "NETWORK_RETRY_SECONDS",
]

logger = logging.getLogger(__name__)

RATE_LIMIT_RETRY_SECONDS = 300
NETWORK_RETRY_SECONDS = 60

# ══════════════════════════════════════════════════════════════════════════════
# Exceptions
# ══════════════════════════════════════════════════════════════════════════════


class ResearchEngineError(Exception):
    """Base class for all research engine errors."""


class InvalidQueryError(ResearchEngineError):
    """The query or parameters were rejected; retrying will not help."""


class NoPluginsAvailableError(ResearchEngineError):
    def __init__(self, message: str = "No plugins available for this query"):
        super().__init__(message)


class NoDocumentsError(ResearchEngineError):
    def __init__(self, message: str = "No documents collected from any source"):
        super().__init__(message)


class AnalysisError(ResearchEngineError):
    """The analysis step failed; fatal to the job."""


class CircuitOpenError(ResearchEngineError):
    """Raised when a circuit breaker rejects a call during its cooldown."""

    def __init__(self, name: str, retry_in: float):
        self.name = name
        self.retry_in = max(int(retry_in), 1)
        super().__init__(
            f"Circuit open for {name}; retry in {self.retry_in}s"
        )


class JobNotFoundError(ResearchEngineError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class InvalidTransitionError(ResearchEngineError):
    """A job lifecycle transition was attempted from a terminal state."""


class AuthError(ResearchEngineError):
    """Missing or invalid credentials on an authenticated request."""


class ToolNotFoundError(ResearchEngineError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool not found: {name}")


class RateLimitExceededError(ResearchEngineError):
    def __init__(self, message: str, retry_in: int = 60):
        self.retry_in = retry_in
        super().__init__(message)


# ══════════════════════════════════════════════════════════════════════════════
# Classification
# ══════════════════════════════════════════════════════════════════════════════


def _retry_after(response: httpx.Response, default: int) -> int:
    value = response.headers.get("Retry-After")
    if value and value.isdigit():
        return int(value)
    return default


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    # GitHub signals exhausted quota with 403 and a zero remaining header
    return (
        response.status_code == 403
        and response.headers.get("X-RateLimit-Remaining") == "0"
    )


def classify_error(error: BaseException, plugin_name: str) -> PluginError:
    """
    Map an exception raised by a plugin onto the error taxonomy.

    Args:
        error: The exception raised while searching
        plugin_name: Human readable plugin name, used in messages

    Returns:
        PluginError with code, message and an optional retry hint
    """
    if isinstance(error, CircuitOpenError):
        return PluginError(
            code=PluginErrorCode.TEMP_ERROR,
            message=f"{plugin_name} is cooling down after repeated failures",
            retry_in=error.retry_in,
        )

    if isinstance(error, InvalidQueryError):
        return PluginError(
            code=PluginErrorCode.USER_ERROR,
            message=f"Invalid query for {plugin_name}: {error}",
        )

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        status = response.status_code
        if _is_rate_limited(response):
            return PluginError(
                code=PluginErrorCode.TEMP_ERROR,
                message=f"{plugin_name} rate limit exceeded",
                retry_in=_retry_after(response, RATE_LIMIT_RETRY_SECONDS),
                details={"status": status},
            )
        if status in (400, 422):
            return PluginError(
                code=PluginErrorCode.USER_ERROR,
                message=f"{plugin_name} rejected the query (HTTP {status})",
                details={"status": status},
            )
        if status >= 500:
            return PluginError(
                code=PluginErrorCode.TEMP_ERROR,
                message=f"{plugin_name} is unavailable (HTTP {status})",
                retry_in=NETWORK_RETRY_SECONDS,
                details={"status": status},
            )
        return PluginError(
            code=PluginErrorCode.PERM_ERROR,
            message=f"{plugin_name} request failed (HTTP {status})",
            details={"status": status},
        )

    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return PluginError(
            code=PluginErrorCode.TEMP_ERROR,
            message=f"Network error contacting {plugin_name}: {type(error).__name__}",
            retry_in=NETWORK_RETRY_SECONDS,
        )

    if isinstance(error, (TimeoutError, ConnectionError)):
        return PluginError(
            code=PluginErrorCode.TEMP_ERROR,
            message=f"Network error contacting {plugin_name}: {error}",
            retry_in=NETWORK_RETRY_SECONDS,
        )

    message = str(error) or type(error).__name__
    return PluginError(
        code=PluginErrorCode.PERM_ERROR,
        message=f"{plugin_name} failed: {message}",
        details={"type": type(error).__name__},
    )


def describe_error(error: Optional[PluginError]) -> str:
    if error is None:
        return "unknown error"
    return f"[{error.code.value}] {error.message}"
