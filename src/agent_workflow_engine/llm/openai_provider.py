"""OpenAI LLM provider implementation."""

import logging
from typing import Any

from openai import OpenAI

from agent_workflow_engine.core.config import LLMConfig
from agent_workflow_engine.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI API provider implementation."""

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the OpenAI provider.

        Args:
            config: LLM configuration.

        Raises:
            ValueError: If API key is not provided.
        """
        if not config.openai_api_key:
            raise ValueError("OpenAI API key is required")

        self.config = config
        self.client = OpenAI(api_key=config.openai_api_key)
        self.model = config.openai_model
        self.temperature = config.openai_temperature

        logger.info("OpenAI provider initialized", extra={"model": self.model})

    @property
    def model_name(self) -> str:
        return self.model

    def generate(
        self,
        prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
        **kwargs: Any,
    ) -> str:
        """Generate text completion using the chat completions API.

        Args:
            prompt: The input prompt.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            model: Model override; the configured model when omitted.
            **kwargs: Additional OpenAI-specific parameters.

        Returns:
            Generated text completion.
        """
        temp = temperature if temperature is not None else self.temperature
        model = model or self.model

        logger.debug("Generating completion", extra={"model": model, "prompt_chars": len(prompt)})

        response = self.client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=temp,
            **kwargs,
        )

        content = response.choices[0].message.content or ""
        logger.debug("Completion received", extra={"model": model, "chars": len(content)})

        return content
