"""Executors that actually carry out a task on behalf of an agent."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from process_agent_orchestrator.agents.models import Agent, AgentTaskOutcome, ExecutionRequest
from process_agent_orchestrator.core.errors import InfrastructureError
from process_agent_orchestrator.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


class AgentExecutor(Protocol):
    async def execute(self, agent: Agent, request: ExecutionRequest) -> AgentTaskOutcome: ...


def build_messages(agent: Agent, request: ExecutionRequest) -> list[dict[str, str]]:
    system = agent.instructions
    if agent.tools.available_tools:
        system += "\n\nAvailable tools: " + ", ".join(agent.tools.available_tools)
    user = request.task
    if request.context:
        user += "\n\nContext:\n" + json.dumps(request.context, indent=2, default=str)
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


class LLMAgentExecutor:
    """Runs a task by prompting an LLM with the agent's instructions."""

    def __init__(self, provider: LLMProvider, *, max_tokens: int | None = None) -> None:
        self._provider = provider
        self._max_tokens = max_tokens

    async def execute(self, agent: Agent, request: ExecutionRequest) -> AgentTaskOutcome:
        messages = build_messages(agent, request)
        logger.debug(
            "Prompting LLM for agent task",
            extra={"agent_id": agent.agent_id, "execution_id": request.execution_id},
        )
        text = await asyncio.to_thread(self._provider.chat, messages, self._max_tokens)
        return AgentTaskOutcome(success=True, output=text)


class CallableAgentExecutor:
    """Adapts a plain async callable into an executor."""

    def __init__(self, handler: Callable[[Agent, ExecutionRequest], Awaitable[Any]]) -> None:
        self._handler = handler

    async def execute(self, agent: Agent, request: ExecutionRequest) -> AgentTaskOutcome:
        out = await self._handler(agent, request)
        if isinstance(out, AgentTaskOutcome):
            return out
        return AgentTaskOutcome(success=True, output=out)


class UnconfiguredExecutor:
    async def execute(self, agent: Agent, request: ExecutionRequest) -> AgentTaskOutcome:
        raise InfrastructureError(
            "No agent executor is configured; set ORCHESTRATOR_LLM_OPENAI_API_KEY"
        )
