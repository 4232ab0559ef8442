"""Builds the configured LLM backend."""

import logging

from process_agent_orchestrator.core.config import LLMConfig
from process_agent_orchestrator.llm.openai_provider import OpenAIProvider
from process_agent_orchestrator.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


class LLMFactory:
    @staticmethod
    def create(config: LLMConfig) -> LLMProvider:
        """Return the backend named by ``config.provider``.

        Raises:
            ValueError: For an unknown provider or missing credentials.
        """
        logger.info(
            "Creating LLM provider",
            extra={"provider": config.provider, "llm_model": config.openai_model},
        )
        match config.provider:
            case "openai":
                return OpenAIProvider(config)
            case _:
                raise ValueError(f"Unsupported LLM provider: {config.provider}")
