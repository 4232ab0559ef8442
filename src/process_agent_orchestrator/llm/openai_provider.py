"""OpenAI chat-completions backend."""

import logging
from typing import Any

from openai import OpenAI

from process_agent_orchestrator.core.config import LLMConfig
from process_agent_orchestrator.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    def __init__(self, config: LLMConfig) -> None:
        """Build a client from ``config``.

        Raises:
            ValueError: If no API key is configured.
        """
        if not config.openai_api_key:
            raise ValueError("OpenAI API key is required")

        self.client = OpenAI(api_key=config.openai_api_key)
        self.model = config.openai_model
        self.default_temperature = config.openai_temperature

        logger.info("OpenAI provider ready", extra={"llm_model": self.model})

    def chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,  # type: ignore[arg-type]
            max_tokens=max_tokens,
            temperature=self.default_temperature if temperature is None else temperature,
            **kwargs,
        )
        reply = response.choices[0].message.content or ""
        logger.debug(
            "Chat completion received",
            extra={"messages": len(messages), "characters": len(reply)},
        )
        return reply
