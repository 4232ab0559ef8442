"""Core configuration for the orchestrator."""

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseSettings):
    """Configuration for the LLM provider backing agent execution."""

    provider: Literal["openai"] = Field(
        default="openai",
        description="LLM provider to use",
    )

    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4",
        description="OpenAI model to use",
    )
    openai_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Temperature for OpenAI model",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_LLM_",
        env_file=".env",
        extra="ignore",
    )


class DiscoveryConfig(BaseSettings):
    """Scoring weights and limits for capability-based discovery."""

    required_weight: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Weight of the required-capability match ratio",
    )
    optional_weight: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Weight of the optional-capability match ratio",
    )
    max_results_limit: int = Field(
        default=1000,
        ge=1,
        description="Upper bound accepted for max_results",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_DISCOVERY_",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _required_dominates(self) -> "DiscoveryConfig":
        if self.required_weight <= self.optional_weight:
            raise ValueError("required_weight must be greater than optional_weight")
        return self


class SemanticSearchConfig(BaseSettings):
    """Limits and field weights for semantic agent search."""

    max_query_length: int = Field(default=1000, ge=1)
    max_results_limit: int = Field(default=100, ge=1)
    max_keywords: int = Field(default=20, ge=1)

    name_weight: float = Field(default=0.4, ge=0.0)
    capability_weight: float = Field(default=0.3, ge=0.0)
    description_weight: float = Field(default=0.2, ge=0.0)
    instructions_weight: float = Field(default=0.1, ge=0.0)
    domain_focus_boost: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Score boost for agents whose domains include the requested focus",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_SEARCH_",
        env_file=".env",
        extra="ignore",
    )


class CoordinationConfig(BaseSettings):
    """Limits for task execution and multi-stage workflow coordination."""

    max_tasks_per_workflow: int = Field(default=20, ge=1)
    default_task_timeout_ms: int = Field(default=30_000, ge=1)
    max_task_timeout_ms: int = Field(default=3_600_000, ge=1)
    max_retained_results: int = Field(
        default=1000,
        ge=1,
        description="Finished execution results kept for lookup; oldest are evicted first.",
    )
    tolerate_sync_failures: bool = Field(
        default=False,
        description=(
            "If true, a failed synchronization action does not halt the workflow; "
            "remaining stages run and the workflow ends as 'partial'."
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_COORDINATION_",
        env_file=".env",
        extra="ignore",
    )


class StoreConfig(BaseSettings):
    """Configuration for the JSON-file stores."""

    storage_path: Path = Field(
        default=Path(".state"),
        description="Directory where models, connections and agents are persisted",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_STORE_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def models_dir(self) -> Path:
        return self.storage_path / "models"

    @property
    def connections_file(self) -> Path:
        return self.storage_path / "connections.json"

    @property
    def agents_file(self) -> Path:
        return self.storage_path / "agents.json"


class OrchestratorConfig(BaseSettings):
    """Main configuration for the orchestrator."""

    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    json_logs: bool = Field(
        default=False,
        description="Emit structured JSON log lines instead of plain text",
    )

    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="LLM configuration",
    )
    discovery: DiscoveryConfig = Field(
        default_factory=DiscoveryConfig,
        description="Discovery scoring configuration",
    )
    search: SemanticSearchConfig = Field(
        default_factory=SemanticSearchConfig,
        description="Semantic search configuration",
    )
    coordination: CoordinationConfig = Field(
        default_factory=CoordinationConfig,
        description="Task and workflow coordination configuration",
    )
    store: StoreConfig = Field(
        default_factory=StoreConfig,
        description="Store configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_file=".env",
        extra="ignore",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        if self.json_logs:
            from process_agent_orchestrator.orchestrator.logging import configure_logging

            configure_logging(self.log_level)
        else:
            level = getattr(logging, self.log_level.upper(), logging.INFO)
            logging.basicConfig(
                level=level,
                format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )

        if self.debug:
            logging.getLogger("process_agent_orchestrator").setLevel(logging.DEBUG)
