"""LLM backends for agent execution."""

from process_agent_orchestrator.llm.factory import LLMFactory
from process_agent_orchestrator.llm.provider import LLMProvider

__all__ = [
    "LLMFactory",
    "LLMProvider",
]
