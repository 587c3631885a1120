"""
Plugin base classes.

Source plugins turn a query into documents; export plugins turn an
analysis into a report. The base classes own the behaviour every plugin
shares: caching, circuit breaking, retries and error classification for
sources; credential validation and failure capture for exports.
Subclasses implement ``do_search`` / ``do_export`` only.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from core.errors import CircuitOpenError, classify_error
from core.reliability import CircuitBreaker, RetryStrategy, retry_async
from models.config import Depth, ExportFormat
from models.research import (
    AnalysisResult,
    Document,
    DocumentMetadata,
    ExportResult,
    PluginResult,
    PluginResultMetadata,
)
from plugins.types import ExportContext, PluginContext, QueryContext
from utils.cache import CACHE_TTL_SECONDS, TTLCache
from utils.helpers import contains_any

__all__ = ["BaseSourcePlugin", "BaseExportPlugin"]

logger = logging.getLogger(__name__)

RETRY_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 1.0

# ══════════════════════════════════════════════════════════════════════════════
# Source Plugins
# ══════════════════════════════════════════════════════════════════════════════


class BaseSourcePlugin(ABC):
    """
    Base class for data-source plugins.

    Subclasses set ``id``, ``name`` and ``description``, optionally
    ``keywords`` and ``depth_limits``, and implement ``do_search``.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    version: str = "1.0.0"
    cache_ttl: float = CACHE_TTL_SECONDS
    keywords: tuple = ()
    depth_limits: Dict[Depth, int] = {
        Depth.QUICK: 5,
        Depth.STANDARD: 10,
        Depth.DEEP: 20,
    }

    def __init__(
        self,
        cache: Optional[TTLCache] = None,
        retry_attempts: int = RETRY_ATTEMPTS,
        retry_delay: float = RETRY_DELAY_SECONDS,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.cache = cache if cache is not None else TTLCache(ttl_seconds=self.cache_ttl)
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.circuit_breaker = circuit_breaker or CircuitBreaker(self.id or type(self).__name__)
        self.config: Dict[str, Any] = {}

    # ── lifecycle ────────────────────────────────────────────────────────────

    async def initialize(self, config: Dict[str, Any]) -> None:
        self.config = dict(config)

    async def dispose(self) -> None:
        self.cache.clear()

    # ── selection ────────────────────────────────────────────────────────────

    def is_available(self) -> bool:
        """Whether the plugin has what it needs (keys, endpoints) to run."""
        return True

    def matches_query(self, query: str) -> bool:
        return contains_any(query, self.keywords)

    def supports(self, query: str, context: QueryContext) -> bool:
        """
        Decide whether this plugin should run for a query.

        An explicit source list wins; otherwise the keyword predicate decides.
        """
        if context.sources is not None:
            return self.id in context.sources and self.is_available()
        return self.is_available() and self.matches_query(query)

    def limit_for(self, depth: Depth) -> int:
        return self.depth_limits.get(depth, self.depth_limits[Depth.STANDARD])

    # ── search ───────────────────────────────────────────────────────────────

    def cache_key(self, context: PluginContext) -> str:
        depth = context.depth.value if context.depth else Depth.STANDARD.value
        return f"{self.id}:{context.query}:{depth}"

    @abstractmethod
    async def do_search(self, context: PluginContext) -> List[Document]:
        """Fetch documents for the query. Raise on failure."""

    @staticmethod
    def _should_retry(error: BaseException) -> bool:
        if isinstance(error, CircuitOpenError):
            return False
        return classify_error(error, "").retryable

    async def search(self, context: PluginContext) -> PluginResult:
        """
        Search with caching, circuit breaking, retries and classification.

        Never raises: failures come back as an unsuccessful PluginResult.
        """
        started = time.monotonic()
        key = self.cache_key(context)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"{self.name}: cache hit for '{context.query}'")
            context.update_progress(100, f"{self.name}: using cached results")
            return cached.model_copy(
                update={"metadata": cached.metadata.model_copy(update={"cached": True})}
            )

        try:
            documents = await retry_async(
                self.circuit_breaker.call,
                self.do_search,
                context,
                attempts=self.retry_attempts,
                base_delay=self.retry_delay,
                strategy=RetryStrategy.CONSTANT,
                should_retry=self._should_retry,
            )
        except Exception as e:
            error = classify_error(e, self.name)
            logger.warning(f"{self.name} search failed: {error.code.value} {error.message}")
            return PluginResult(
                success=False,
                documents=[],
                metadata=PluginResultMetadata(
                    source=self.id,
                    documents_found=0,
                    duration=int((time.monotonic() - started) * 1000),
                ),
                error=error,
            )

        result = PluginResult(
            success=True,
            documents=documents,
            metadata=PluginResultMetadata(
                source=self.id,
                documents_found=len(documents),
                duration=int((time.monotonic() - started) * 1000),
            ),
        )
        self.cache.set(key, result, self.cache_ttl)
        logger.info(f"{self.name}: {len(documents)} documents for '{context.query}'")
        return result

    def make_document(
        self,
        doc_id: str,
        title: str,
        content: str,
        url: Optional[str] = None,
        relevance: Optional[float] = None,
        timestamp: Optional[str] = None,
        **extra: Any,
    ) -> Document:
        metadata: Dict[str, Any] = {"source": self.id, "relevance_score": relevance}
        if timestamp:
            metadata["timestamp"] = timestamp
        metadata.update(extra)
        return Document(
            id=f"{self.id}-{doc_id}",
            title=title or "Untitled",
            content=content or "",
            url=url or None,
            metadata=DocumentMetadata(**metadata),
        )


# ══════════════════════════════════════════════════════════════════════════════
# Export Plugins
# ══════════════════════════════════════════════════════════════════════════════


class BaseExportPlugin(ABC):
    id: str = ""
    name: str = ""
    description: str = ""
    version: str = "1.0.0"
    format: ExportFormat = ExportFormat.JSON

    def __init__(self) -> None:
        self.config: Dict[str, Any] = {}

    async def initialize(self, config: Dict[str, Any]) -> None:
        self.config = dict(config)

    async def dispose(self) -> None:
        return None

    def validate_config(self, config: Dict[str, Any]) -> bool:
        return True

    @abstractmethod
    async def do_export(self, analysis: AnalysisResult, context: ExportContext) -> ExportResult:
        """Produce the report. Raise on failure."""

    async def export(self, analysis: AnalysisResult, context: ExportContext) -> ExportResult:
        """Validate credentials and export; failures are returned, not raised."""
        try:
            if not self.validate_config(context.credentials or {}):
                raise ValueError("Invalid export configuration")
            result = await self.do_export(analysis, context)
            logger.info(f"{self.name}: exported analysis {analysis.id}")
            return result
        except Exception as e:
            logger.error(f"{self.name} export failed: {e}")
            return ExportResult(success=False, format=self.format.value, error=str(e))
