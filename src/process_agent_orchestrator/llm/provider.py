"""Chat-completion backends for LLM-driven agent execution."""

from abc import ABC, abstractmethod
from typing import Any


class LLMProvider(ABC):
    """A chat-completion backend.

    :class:`~process_agent_orchestrator.agents.executors.LLMAgentExecutor`
    renders an agent's instructions and a task into messages and hands them
    to ``chat``; the coordinator never sees the backend.
    """

    model: str

    @abstractmethod
    def chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        """Return the assistant reply to ``messages``.

        Args:
            messages: Message dicts with 'role' and 'content'.
            max_tokens: Upper bound on the reply length.
            temperature: Sampling temperature; the provider default when None.
            **kwargs: Backend-specific parameters.
        """
