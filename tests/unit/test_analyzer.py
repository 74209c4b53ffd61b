"""Tests for LLM-backed show and creator analysis."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from podmatch.analysis.analyzer import (
    CREATOR_SYSTEM_PROMPT,
    SHOW_SYSTEM_PROMPT,
    LLMFeatureAnalyzer,
    build_creator_prompt,
    build_show_prompt,
)
from podmatch.analysis.llm.base import LLMProvider
from podmatch.core.errors import InvalidFeatureError, UpstreamUnavailableError
from podmatch.core.schemas import CandidateRecord, CreatorRecord

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"


def _provider(response: str | None = None, error: Exception | None = None) -> MagicMock:
    mock_provider = MagicMock(spec=LLMProvider)
    mock_provider.provider_id = "mock"
    mock_provider.complete = AsyncMock(return_value=response, side_effect=error)
    return mock_provider


def _seed(memory_store) -> None:  # type: ignore[no-untyped-def]
    memory_store.records["s1"] = CandidateRecord(
        id="s1",
        title="Founders Talk",
        description="Weekly interviews with startup founders.",
        publisher="Acme Media",
        categories=["Technology", "Business"],
        average_episode_length=47.5,
        total_episodes=210,
    )
    memory_store.creators["c1"] = CreatorRecord(
        id="c1",
        name="Ada",
        bio="ML engineer turned founder.",
        topics=["machine learning"],
        works=["Talk at PyCon", "Blog: shipping ML"],
    )


class TestPrompts:
    def test_show_prompt(self) -> None:
        record = CandidateRecord(
            id="s1", title="Founders Talk", categories=["Tech"], description="About startups",
            average_episode_length=47.5,
        )
        prompt = build_show_prompt(record)
        assert "Title: Founders Talk" in prompt
        assert "Categories: Tech" in prompt
        assert "48 minutes" in prompt
        assert prompt.endswith("About startups")

    def test_show_prompt_without_description(self) -> None:
        assert "(no description)" in build_show_prompt(CandidateRecord(id="s1"))

    def test_creator_prompt(self) -> None:
        prompt = build_creator_prompt(CreatorRecord(id="c1", name="Ada", works=["Talk"]))
        assert "Name: Ada" in prompt
        assert "- Talk" in prompt


class TestAnalyzeShow:
    async def test_parses_features(self, memory_store) -> None:  # type: ignore[no-untyped-def]
        _seed(memory_store)
        raw = (FIXTURES_DIR / "sample_show_analysis.json").read_text()
        provider = _provider(raw)
        analyzer = LLMFeatureAnalyzer(memory_store, provider, model="m1")

        features = await analyzer.analyze("s1")

        assert features.candidate_id == "s1"
        assert features.host_style == "interview"
        assert features.complexity_level == "intermediate"
        assert features.production_quality == 82
        assert features.guest_requirements.minimum_expertise == "expert"
        assert len(features.guest_requirements.preferred_topics) == 3
        assert features.confidence == pytest.approx(0.85)

        args, kwargs = provider.complete.call_args
        assert args[1] == "m1"
        assert kwargs["system"] == SHOW_SYSTEM_PROMPT
        assert "Founders Talk" in args[0]

    async def test_catalog_length_wins(self, memory_store) -> None:  # type: ignore[no-untyped-def]
        _seed(memory_store)
        raw = (FIXTURES_DIR / "sample_show_analysis.json").read_text()
        features = await LLMFeatureAnalyzer(memory_store, _provider(raw)).analyze("s1")
        assert features.average_episode_length == pytest.approx(47.5)

    async def test_unknown_record(self, memory_store) -> None:  # type: ignore[no-untyped-def]
        analyzer = LLMFeatureAnalyzer(memory_store, _provider("{}"))
        with pytest.raises(UpstreamUnavailableError, match="ghost"):
            await analyzer.analyze("ghost")

    async def test_provider_failure(self, memory_store) -> None:  # type: ignore[no-untyped-def]
        _seed(memory_store)
        analyzer = LLMFeatureAnalyzer(memory_store, _provider(error=RuntimeError("overloaded")))
        with pytest.raises(UpstreamUnavailableError, match="overloaded"):
            await analyzer.analyze("s1")

    async def test_missing_api_key_is_upstream_error(self, memory_store) -> None:  # type: ignore[no-untyped-def]
        _seed(memory_store)
        analyzer = LLMFeatureAnalyzer(memory_store, _provider(error=ValueError("KEY missing")))
        with pytest.raises(UpstreamUnavailableError):
            await analyzer.analyze("s1")

    async def test_missing_sdk_is_upstream_error(self, memory_store) -> None:  # type: ignore[no-untyped-def]
        _seed(memory_store)
        analyzer = LLMFeatureAnalyzer(memory_store, _provider(error=ImportError("no sdk")))
        with pytest.raises(UpstreamUnavailableError, match="no sdk"):
            await analyzer.analyze("s1")

    async def test_unparseable_output(self, memory_store) -> None:  # type: ignore[no-untyped-def]
        _seed(memory_store)
        analyzer = LLMFeatureAnalyzer(memory_store, _provider("sorry, I can't"))
        with pytest.raises(InvalidFeatureError, match="Failed to parse"):
            await analyzer.analyze("s1")

    async def test_invalid_output(self, memory_store) -> None:  # type: ignore[no-untyped-def]
        _seed(memory_store)
        analyzer = LLMFeatureAnalyzer(memory_store, _provider('{"production_quality": 500}'))
        with pytest.raises(InvalidFeatureError, match="s1"):
            await analyzer.analyze("s1")


class TestAnalyzeCreator:
    async def test_parses_features(self, memory_store) -> None:  # type: ignore[no-untyped-def]
        _seed(memory_store)
        raw = (FIXTURES_DIR / "sample_creator_analysis.json").read_text()
        provider = _provider(raw)

        profile = await LLMFeatureAnalyzer(memory_store, provider).analyze_creator("c1")

        assert profile.creator_id == "c1"
        assert profile.expertise_level == "expert"
        assert profile.communication_style == "professional"
        assert len(profile.key_points) == 5
        assert provider.complete.call_args.kwargs["system"] == CREATOR_SYSTEM_PROMPT

    async def test_unknown_creator(self, memory_store) -> None:  # type: ignore[no-untyped-def]
        analyzer = LLMFeatureAnalyzer(memory_store, _provider("{}"))
        with pytest.raises(UpstreamUnavailableError):
            await analyzer.analyze_creator("ghost")

    async def test_missing_required_field(self, memory_store) -> None:  # type: ignore[no-untyped-def]
        _seed(memory_store)
        analyzer = LLMFeatureAnalyzer(memory_store, _provider('{"topics": ["ai"]}'))
        with pytest.raises(InvalidFeatureError, match="c1"):
            await analyzer.analyze_creator("c1")
