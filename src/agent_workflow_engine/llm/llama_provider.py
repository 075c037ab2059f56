"""Local LLaMA LLM provider implementation."""

import logging
from typing import Any

from agent_workflow_engine.core.config import LLMConfig
from agent_workflow_engine.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


class LLaMAProvider(LLMProvider):
    """Local LLaMA model provider implementation.

    Requires the `llama` extra:
        pip install agent-workflow-engine[llama]

    A local model file serves every step, so a per-step `model` value is
    reported back but does not switch weights.
    """

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the LLaMA provider.

        Args:
            config: LLM configuration.

        Raises:
            ValueError: If model path is not provided.
            ImportError: If llama-cpp-python is not installed.
        """
        if not config.llama_model_path:
            raise ValueError("LLaMA model path is required")

        try:
            from llama_cpp import Llama
        except ImportError as e:
            raise ImportError(
                "llama-cpp-python is required for LLaMA provider. "
                "Install it with: pip install llama-cpp-python"
            ) from e

        self.config = config

        logger.info("Loading LLaMA model", extra={"path": str(config.llama_model_path)})

        self.llm = Llama(
            model_path=str(config.llama_model_path),
            n_ctx=config.llama_n_ctx,
            n_threads=config.llama_n_threads,
            verbose=False,
        )

        logger.info("LLaMA model loaded successfully")

    @property
    def model_name(self) -> str:
        return self.config.llama_model_path.stem if self.config.llama_model_path else "llama"

    def generate(
        self,
        prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
        **kwargs: Any,
    ) -> str:
        """Generate text completion using local LLaMA model.

        Args:
            prompt: The input prompt.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            model: Ignored; the loaded model file is always used.
            **kwargs: Additional llama-cpp-specific parameters.

        Returns:
            Generated text completion.
        """
        logger.debug("Generating completion", extra={"prompt_chars": len(prompt)})

        result = self.llm(
            prompt,
            max_tokens=max_tokens or 512,
            temperature=temperature if temperature is not None else 0.7,
            **kwargs,
        )

        content = result["choices"][0]["text"]
        logger.debug("Completion received", extra={"chars": len(content)})

        return content
