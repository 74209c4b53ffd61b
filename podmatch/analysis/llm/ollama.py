"""Ollama local LLM provider (OpenAI-compatible API)."""

import logging
import os

from podmatch.analysis.llm.base import SYSTEM_PROMPT, LLMProvider

logger = logging.getLogger(__name__)

_OLLAMA_BASE_URL = "http://localhost:11434/v1"


class OllamaProvider(LLMProvider):
    """LLM provider using a local Ollama instance."""

    @property
    def provider_id(self) -> str:
        return "ollama"

    @property
    def default_model(self) -> str:
        return "llama3"

    @property
    def env_var(self) -> None:
        return None

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        try:
            import openai
        except ImportError:
            msg = (
                "openai is required for Ollama (OpenAI-compatible API). "
                "Install with: pip install 'podcast-matchmaker[openai]'"
            )
            raise ImportError(msg) from None

        base_url = os.environ.get("OLLAMA_BASE_URL", _OLLAMA_BASE_URL)
        use_model = model or self.default_model
        logger.debug("Sending analysis prompt to Ollama at %s (%s)", base_url, use_model)

        client = openai.AsyncOpenAI(base_url=base_url, api_key="ollama")
        response = await client.chat.completions.create(
            model=use_model,
            messages=[
                {"role": "system", "content": system if system is not None else SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )

        return response.choices[0].message.content or ""
