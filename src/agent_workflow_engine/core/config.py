"""Core configuration for the workflow engine."""

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from agent_workflow_engine.core.logging import configure_logging


class LLMConfig(BaseSettings):
    """Configuration for LLM providers backing the default tool invoker."""

    provider: Literal["openai", "llama"] = Field(
        default="openai",
        description="LLM provider to use",
    )

    # OpenAI settings
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4",
        description="OpenAI model to use when a step does not name one",
    )
    openai_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Temperature for OpenAI model",
    )

    # LLaMA settings
    llama_model_path: Path | None = Field(
        default=None,
        description="Path to LLaMA model file",
    )
    llama_n_ctx: int = Field(
        default=4096,
        gt=0,
        description="Context window size for LLaMA",
    )
    llama_n_threads: int | None = Field(
        default=None,
        description="Number of threads for LLaMA (None = auto)",
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_LLM_",
        env_file=".env",
        extra="ignore",
    )


class EngineConfig(BaseSettings):
    """Configuration for sessions, step output handling and discovery."""

    session_idle_timeout_seconds: float = Field(
        default=30 * 60,
        gt=0,
        description="Idle time after which a session is expired",
    )
    reaper_interval_seconds: float = Field(
        default=5 * 60,
        gt=0,
        description="How often the reaper sweeps idle sessions",
    )
    completed_session_grace_seconds: float = Field(
        default=60,
        ge=0,
        description="How long a completed session stays inspectable",
    )
    step_display_max_tokens: int = Field(
        default=2000,
        gt=0,
        description="Token budget for the display text returned per step",
    )

    output_dir: Path = Field(
        default=Path("workflow-output"),
        description="Base directory for persisted step outputs",
    )
    summary_max_chars: int = Field(
        default=200,
        gt=0,
        description="Length of the in-memory summary kept per step output",
    )
    large_output_threshold_bytes: int = Field(
        default=1_000_000,
        gt=0,
        description="Outputs above this size are always written to disk",
    )

    default_model: str | None = Field(
        default=None,
        description="System default model (None lets the invoker decide)",
    )
    default_temperature: float | None = Field(
        default=None,
        ge=0.0,
        le=2.0,
        description="System default temperature",
    )
    default_max_tokens: int | None = Field(
        default=None,
        gt=0,
        description="System default max tokens per step",
    )

    synthesis_tool: str = Field(
        default="analyze_text",
        description="Tool used by auto-synthesis when a workflow does not name one",
    )
    workflow_dirs: list[Path] = Field(
        default_factory=list,
        description="Extra directories scanned for workflow files",
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_ENGINE_",
        env_file=".env",
        extra="ignore",
    )


class AppConfig(BaseSettings):
    """Top-level configuration composing the LLM and engine settings."""

    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="LLM configuration",
    )
    engine: EngineConfig = Field(
        default_factory=EngineConfig,
        description="Engine configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_",
        env_file=".env",
        extra="ignore",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        configure_logging(self.log_level)

        if self.debug:
            logging.getLogger("agent_workflow_engine").setLevel(logging.DEBUG)
