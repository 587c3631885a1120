"""Tests for core/analysis.py (template and LLM paths)."""

from unittest.mock import AsyncMock, patch

import pytest

from conftest import make_document
from core.analysis import Analyzer, compute_confidence, select_sources
from core.errors import AnalysisError
from models.config import Depth
from models.research import Importance


class TestHelpers:
    def test_select_sources_cited_first(self, documents):
        selected = select_sources(documents, ["3", "missing", "3"])
        assert [d.id for d in selected] == ["3", "1", "2"]

    def test_select_sources_limit(self):
        docs = [make_document(str(i), relevance=i / 20) for i in range(15)]
        selected = select_sources(docs, [], limit=10)
        assert len(selected) == 10
        assert selected[0].id == "14"

    def test_confidence_components(self, documents, analysis):
        confidence = compute_confidence(documents, analysis.insights, ["1"])
        # 3/10 volume, 3/5 diversity, insights and citations present
        assert confidence == pytest.approx(0.71)

    def test_confidence_bounds(self):
        assert compute_confidence([], [], []) == 0.0
        docs = [make_document(str(i), source=f"s{i}") for i in range(20)]
        assert compute_confidence(docs, [object()], ["0"]) == 1.0


class TestTemplateAnalysis:
    @pytest.mark.asyncio
    async def test_empty_documents_rejected(self):
        with pytest.raises(AnalysisError):
            await Analyzer(use_llm=False).analyze([], "react")

    @pytest.mark.asyncio
    async def test_template_result_shape(self, documents):
        result = await Analyzer(use_llm=False).analyze(documents, "react deployment")

        assert result.metadata.provider == "template"
        assert result.metadata.total_documents == 3
        assert "3 documents" in result.summary
        overview = [i for i in result.insights if i.category == "source_overview"]
        assert [i.title for i in overview] == [
            "GitHub findings",
            "Reddit findings",
            "Stack Overflow findings",
        ]
        assert all(i.importance == Importance.MEDIUM for i in overview)
        assert any("deep depth" in r for r in result.recommendations)
        assert {d.id for d in result.sources} == {"1", "2", "3"}
        assert 0.0 <= result.metadata.confidence <= 1.0

    @pytest.mark.asyncio
    async def test_template_used_without_provider_key(self, documents):
        analyzer = Analyzer()
        with patch("core.analysis.call_llm", new=AsyncMock()) as call:
            result = await analyzer.analyze(documents, "react", Depth.DEEP)
        call.assert_not_called()
        assert result.metadata.provider == "template"
        assert not any("deep depth" in r for r in result.recommendations)

    @pytest.mark.asyncio
    async def test_results_are_cached(self, documents):
        analyzer = Analyzer(use_llm=False)
        first = await analyzer.analyze(documents, "react")
        second = await analyzer.analyze(list(reversed(documents)), "react")
        assert first is second


class TestLLMAnalysis:
    @pytest.mark.asyncio
    async def test_parses_model_answer(self, monkeypatch, documents):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        answer = {
            "summary": "Deployments break on missing env vars.",
            "insights": [
                {
                    "category": "common_problems",
                    "title": "Env vars",
                    "description": "Missing at build time",
                    "importance": "CRITICAL",
                    "evidence": ["1", "unknown"],
                },
                "not an insight",
            ],
            "recommendations": ["Validate env vars"],
            "citations": ["2", "zzz"],
        }
        with patch("core.analysis.call_llm", new=AsyncMock(return_value=answer)) as call:
            result = await Analyzer().analyze(documents, "react deployment")

        assert call.call_args.args[0] == "openai"
        assert call.call_args.kwargs["model"] == "gpt-4o-mini"
        assert result.metadata.provider == "openai"
        assert len(result.insights) == 1
        insight = result.insights[0]
        assert insight.importance == Importance.MEDIUM
        assert [e.document_id for e in insight.evidence] == ["1"]
        assert result.sources[0].id == "2"
        assert result.recommendations == ["Validate env vars"]

    @pytest.mark.asyncio
    async def test_provider_failure_raises_analysis_error(self, monkeypatch, documents):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        failing = AsyncMock(side_effect=ValueError("Provider anthropic returned invalid JSON"))
        with patch("core.analysis.call_llm", new=failing):
            with pytest.raises(AnalysisError, match="AI analysis failed"):
                await Analyzer().analyze(documents, "react")

    def test_prompt_respects_depth_budget(self):
        docs = [make_document(f"d{i}", content="x" * 3000, relevance=i / 10) for i in range(6)]
        prompt = Analyzer(use_llm=False).build_prompt(docs, "react", Depth.QUICK)
        assert "Documents (3 of 6)" in prompt
        # Most relevant documents are packed first
        assert "ID: d5" in prompt
        assert "ID: d0" not in prompt
