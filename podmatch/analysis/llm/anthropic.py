"""Anthropic Claude LLM provider (async client)."""

import logging
import os

from podmatch.analysis.llm.base import SYSTEM_PROMPT, LLMProvider

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """LLM provider using the Anthropic Claude API."""

    @property
    def provider_id(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return "claude-sonnet-4-20250514"

    @property
    def env_var(self) -> str:
        return "ANTHROPIC_API_KEY"

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
            import anthropic
        except ImportError:
            msg = (
                "anthropic is required for feature analysis. "
                "Install with: pip install 'podcast-matchmaker[anthropic]'"
            )
            raise ImportError(msg) from None

        use_model = model or self.default_model
        logger.debug("Sending analysis prompt to Anthropic (%s)", use_model)

        async with anthropic.AsyncAnthropic(api_key=api_key) as client:
            message = await client.messages.create(
                model=use_model,
                max_tokens=1024,
                system=system if system is not None else SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )

        return message.content[0].text  # type: ignore[union-attr]
