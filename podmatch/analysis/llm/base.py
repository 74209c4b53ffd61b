"""Abstract base class for LLM providers and shared response parsing."""

import json
import re
from abc import ABC, abstractmethod
from typing import Any

SYSTEM_PROMPT = (
    "You are a podcast analyst. Read the material provided and describe it "
    "as structured features.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation)."
)


def parse_json_response(raw_text: str) -> dict[str, Any]:
    """Parse an LLM response into a JSON object.

    Handles markdown-wrapped JSON (```json ... ```) and plain JSON.
    Raises ValueError on anything that is not a JSON object.
    """
    cleaned = re.sub(r"^```(?:json)?\s*\n?", "", raw_text.strip())
    cleaned = re.sub(r"\n?```\s*$", "", cleaned)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        msg = f"Failed to parse LLM response as JSON: {e}"
        raise ValueError(msg) from e

    if not isinstance(data, dict):
        msg = f"Expected a JSON object from the LLM, got {type(data).__name__}"
        raise ValueError(msg)
    return data


class LLMProvider(ABC):
    """Base class that every LLM provider must implement."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'anthropic')."""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        """Send a prompt to the LLM and return the raw response text.

        Args:
            prompt: User message describing the entity to analyze.
            model: Override the provider's default model. None uses default.
            system: Override the system prompt. None falls back to SYSTEM_PROMPT.

        Returns:
            Raw text response from the LLM (expected to be JSON).
        """

    @property
    @abstractmethod
    def default_model(self) -> str:
        """The default model ID used when no override is specified."""

    @property
    @abstractmethod
    def env_var(self) -> str | None:
        """Environment variable name for the API key, or None if not needed."""
