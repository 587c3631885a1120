"""Pytest configuration, async test support and shared fixtures.

Coroutine tests run on a fresh event loop per test, so the suite needs no
async plugin. The ``--asyncio-mode`` flag is still accepted so a
``pytest-asyncio`` style invocation does not abort startup.

Fixtures here build documents, analyses and stub plugins used across the
plugin, orchestrator, worker and server tests.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Dict, List, Optional

import pytest

from models.research import (
    AnalysisMetadata,
    AnalysisResult,
    Document,
    DocumentMetadata,
    Evidence,
    Importance,
    Insight,
)
from plugins.base import BaseSourcePlugin
from plugins.types import PluginContext
from utils.rate_limit import reset_rate_limits

LLM_ENV_KEYS = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "OPENROUTER_API_KEY",
    "SERPER_API_KEY",
    "SERP_API_KEY",
    "BRAVE_SEARCH_API_KEY",
)


def pytest_addoption(parser: pytest.Parser) -> None:
    try:
        parser.addoption(
            "--asyncio-mode",
            action="store",
            default="auto",
            help="Accepted for compatibility; coroutine tests always run",
        )
    except ValueError:
        # Already registered by pytest-asyncio
        pass


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Run coroutine test functions to completion on their own loop."""
    test_obj = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_obj):
        return None

    parameters = inspect.signature(test_obj).parameters
    kwargs = {
        name: value
        for name, value in pyfuncitem.funcargs.items()
        if name in parameters
    }

    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(test_obj(**kwargs))
    finally:
        loop.close()
        asyncio.set_event_loop(None)
    return True


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep real API keys and rate limit state out of every test."""
    for key in LLM_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_rate_limits()
    yield
    reset_rate_limits()


# ══════════════════════════════════════════════════════════════════════════════
# Builders
# ══════════════════════════════════════════════════════════════════════════════


def make_document(
    doc_id: str,
    source: str = "github",
    title: Optional[str] = None,
    content: str = "",
    url: Optional[str] = None,
    relevance: float = 0.5,
) -> Document:
    return Document(
        id=doc_id,
        title=title or f"Document {doc_id}",
        content=content or f"Content about react deployment for {doc_id}",
        url=url if url is not None else f"https://example.com/{doc_id}",
        metadata=DocumentMetadata(source=source, relevance_score=relevance),
    )


def make_analysis(documents: Optional[List[Document]] = None) -> AnalysisResult:
    documents = documents or [make_document("a"), make_document("b", source="reddit")]
    return AnalysisResult(
        id="analysis-test",
        query="react deployment issues",
        summary="Deployments fail when environment variables are missing.",
        insights=[
            Insight(
                id="insight-1",
                category="common_problems",
                title="Missing environment variables",
                description="Builds succeed locally but fail in CI.",
                importance=Importance.HIGH,
                evidence=[Evidence(document_id=documents[0].id, excerpt="env vars missing")],
            )
        ],
        recommendations=["Validate environment variables at build time"],
        sources=documents,
        metadata=AnalysisMetadata(
            total_documents=len(documents),
            analysis_duration=12,
            confidence=0.8,
            provider="template",
        ),
    )


class StubSourcePlugin(BaseSourcePlugin):
    """Source plugin returning canned documents or raising a canned error."""

    name = "Stub"
    description = "Test plugin"

    def __init__(
        self,
        plugin_id: str = "stub",
        documents: Optional[List[Document]] = None,
        error: Optional[BaseException] = None,
        available: bool = True,
        matches: bool = True,
        delay: float = 0.0,
        **kwargs: Any,
    ):
        kwargs.setdefault("retry_delay", 0)
        super().__init__(**kwargs)
        self.id = plugin_id
        self.documents = documents if documents is not None else []
        self.error = error
        self.available = available
        self.matches = matches
        self.delay = delay
        self.calls = 0

    def is_available(self) -> bool:
        return self.available

    def matches_query(self, query: str) -> bool:
        return self.matches

    async def do_search(self, context: PluginContext) -> List[Document]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.documents)


@pytest.fixture
def documents() -> List[Document]:
    return [
        make_document("1", relevance=0.9),
        make_document("2", source="reddit", relevance=0.6),
        make_document("3", source="stackoverflow", relevance=0.3),
    ]


@pytest.fixture
def analysis() -> AnalysisResult:
    return make_analysis()


def job_data(**overrides: Any) -> Dict[str, Any]:
    data = {
        "brief": "test react deployment issues",
        "depth": "standard",
        "sources": ["github"],
        "exportFormat": None,
        "exportCredentials": None,
    }
    data.update(overrides)
    return data
