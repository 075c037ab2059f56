"""Abstract base class for LLM providers."""

from abc import ABC, abstractmethod
from typing import Any


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    This interface allows pluggable LLM backends (OpenAI, LLaMA, etc.) to
    serve workflow steps through `ProviderToolInvoker`.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Identifier of the model used when a call does not name one."""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
        **kwargs: Any,
    ) -> str:
        """Generate text completion from a prompt.

        Args:
            prompt: The input prompt.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            model: Model override for this call.
            **kwargs: Additional provider-specific parameters.

        Returns:
            Generated text completion.
        """
