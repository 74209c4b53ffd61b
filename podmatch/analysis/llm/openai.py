"""OpenAI LLM provider (async client)."""

import logging
import os

from podmatch.analysis.llm.base import SYSTEM_PROMPT, LLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """LLM provider using the OpenAI chat completions API."""

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return "gpt-4o-mini"

    @property
    def env_var(self) -> str:
        return "OPENAI_API_KEY"

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        api_key = os.environ.get(self.env_var)
        if not api_key:
            msg = f"{self.env_var} environment variable is required"
            raise ValueError(msg)

        try:
            import openai
        except ImportError:
            msg = (
                "openai is required for feature analysis. "
                "Install with: pip install 'podcast-matchmaker[openai]'"
            )
            raise ImportError(msg) from None

        use_model = model or self.default_model
        logger.debug("Sending analysis prompt to OpenAI (%s)", use_model)

        client = openai.AsyncOpenAI(api_key=api_key)
        response = await client.chat.completions.create(
            model=use_model,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system if system is not None else SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )

        return response.choices[0].message.content or ""
