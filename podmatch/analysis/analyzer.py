"""LLM-backed feature analysis for shows and creators."""

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from podmatch.analysis.base import Analyzer
from podmatch.analysis.llm import LLMProvider, parse_json_response
from podmatch.core.errors import InvalidFeatureError, UpstreamUnavailableError
from podmatch.core.schemas import (
    CandidateFeatures,
    CandidateRecord,
    CreatorRecord,
    ProfileFeatures,
)
from podmatch.core.stores import CandidateStore

logger = logging.getLogger(__name__)

SHOW_SYSTEM_PROMPT = (
    "You are a podcast analyst. Describe the show provided as structured "
    "features for guest matching.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation) with these fields:\n"
    "- topics (list[str]): 3-8 main subjects the show covers\n"
    "- content_style (object): booleans for interview, narrative, "
    "educational, debate\n"
    '- host_style (string): one of "conversational", "interview", '
    '"educational", "debate", "storytelling"\n'
    "- average_episode_length (number or null): typical episode length in minutes\n"
    '- complexity_level (string): one of "beginner", "intermediate", "advanced"\n'
    "- production_quality (number): 0-100\n"
    "- guest_requirements (object): minimum_expertise (one of \"beginner\", "
    '"intermediate", "expert"), preferred_topics (list[str], at most 3), '
    "communication_preference (list[str])\n"
    "- confidence (number): 0-1, how certain you are about this analysis"
)

CREATOR_SYSTEM_PROMPT = (
    "You are a talent analyst for podcast bookings. Describe the creator "
    "provided as a prospective guest.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation) with these fields:\n"
    "- topics (list[str]): 3-8 subjects the creator can speak about\n"
    '- expertise_level (string): one of "beginner", "intermediate", "expert"\n'
    '- communication_style (string): one of "professional", "casual", '
    '"academic", "storyteller"\n'
    "- key_points (list[str]): up to 5 talking points\n"
    "- confidence (number): 0-1, how certain you are about this analysis"
)


def build_show_prompt(record: CandidateRecord) -> str:
    """Render a show record as the user message for the analysis prompt."""
    lines = [f"Title: {record.title}"]
    if record.publisher:
        lines.append(f"Publisher: {record.publisher}")
    if record.categories:
        lines.append(f"Categories: {', '.join(record.categories)}")
    if record.average_episode_length is not None:
        lines.append(f"Average episode length: {record.average_episode_length:.0f} minutes")
    if record.total_episodes:
        lines.append(f"Episodes published: {record.total_episodes}")
    lines.append("")
    lines.append(record.description or "(no description)")
    return "\n".join(lines)


def build_creator_prompt(record: CreatorRecord) -> str:
    """Render a creator record as the user message for the analysis prompt."""
    lines = [f"Name: {record.name}"]
    if record.topics:
        lines.append(f"Self-described topics: {', '.join(record.topics)}")
    if record.works:
        lines.append("Recent work:")
        lines.extend(f"- {work}" for work in record.works)
    lines.append("")
    lines.append(record.bio or "(no bio)")
    return "\n".join(lines)


class LLMFeatureAnalyzer(Analyzer):
    """Analyzer that asks an LLM provider to describe records from the store."""

    def __init__(
        self,
        store: CandidateStore,
        provider: LLMProvider,
        model: str | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._model = model

    async def analyze(self, entity_id: str) -> CandidateFeatures:
        record = await self._store.get_record(entity_id)
        if record is None:
            msg = f"No show record stored for '{entity_id}'"
            raise UpstreamUnavailableError(msg)

        data = await self._ask(build_show_prompt(record), SHOW_SYSTEM_PROMPT, entity_id)
        data["candidate_id"] = entity_id
        data["analyzed_at"] = datetime.now()
        # The catalog measures length directly; prefer it over the model's guess.
        if record.average_episode_length is not None:
            data["average_episode_length"] = record.average_episode_length

        try:
            features = CandidateFeatures.model_validate(data)
        except ValidationError as e:
            msg = f"Analysis output for show '{entity_id}' is invalid: {e}"
            raise InvalidFeatureError(msg) from e

        logger.debug("Analyzed show '%s' (confidence %.2f)", entity_id, features.confidence)
        return features

    async def analyze_creator(self, creator_id: str) -> ProfileFeatures:
        """Analyze a stored creator profile into ProfileFeatures."""
        record = await self._store.get_creator_record(creator_id)
        if record is None:
            msg = f"No creator record stored for '{creator_id}'"
            raise UpstreamUnavailableError(msg)

        data = await self._ask(build_creator_prompt(record), CREATOR_SYSTEM_PROMPT, creator_id)
        data["creator_id"] = creator_id
        if "key_points" in data and isinstance(data["key_points"], list):
            data["key_points"] = data["key_points"][:5]

        try:
            features = ProfileFeatures.model_validate(data)
        except ValidationError as e:
            msg = f"Analysis output for creator '{creator_id}' is invalid: {e}"
            raise InvalidFeatureError(msg) from e

        logger.debug("Analyzed creator '%s' (%s)", creator_id, features.expertise_level)
        return features

    async def _ask(self, prompt: str, system: str, entity_id: str) -> dict[str, Any]:
        try:
            raw = await self._provider.complete(prompt, self._model, system=system)
        except Exception as e:
            # Includes a missing SDK or API key: the provider is unusable.
            msg = f"{self._provider.provider_id} analysis failed for '{entity_id}': {e}"
            raise UpstreamUnavailableError(msg) from e

        try:
            return parse_json_response(raw)
        except ValueError as e:
            raise InvalidFeatureError(str(e)) from e
