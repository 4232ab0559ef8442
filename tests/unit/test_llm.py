"""Unit tests for LLM providers and the LLM-backed executor."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from unittest.mock import Mock, patch

import pytest

from process_agent_orchestrator.agents.executors import (
    CallableAgentExecutor,
    LLMAgentExecutor,
    UnconfiguredExecutor,
    build_messages,
)
from process_agent_orchestrator.agents.models import (
    Agent,
    AgentTaskOutcome,
    ExecutionRequest,
)
from process_agent_orchestrator.core.config import LLMConfig
from process_agent_orchestrator.core.errors import InfrastructureError
from process_agent_orchestrator.llm.factory import LLMFactory
from process_agent_orchestrator.llm.openai_provider import OpenAIProvider
from process_agent_orchestrator.llm.provider import LLMProvider


def test_openai_provider_requires_key() -> None:
    with pytest.raises(ValueError, match="API key is required"):
        OpenAIProvider(LLMConfig(openai_api_key=None))


def test_factory_creates_openai_provider(llm_config: LLMConfig) -> None:
    with patch("process_agent_orchestrator.llm.openai_provider.OpenAI") as mock_openai:
        provider = LLMFactory.create(llm_config)

    assert isinstance(provider, OpenAIProvider)
    mock_openai.assert_called_once_with(api_key="test-key")


def test_openai_chat_passes_model_and_temperature(llm_config: LLMConfig) -> None:
    with patch("process_agent_orchestrator.llm.openai_provider.OpenAI") as mock_openai:
        provider = OpenAIProvider(llm_config)
    create = mock_openai.return_value.chat.completions.create
    create.return_value.choices = [Mock(message=Mock(content="done"))]

    assert provider.chat([{"role": "user", "content": "hi"}], max_tokens=10) == "done"
    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "gpt-4"
    assert kwargs["temperature"] == 0.7
    assert kwargs["max_tokens"] == 10


def test_build_messages_includes_tools_and_context(make_agent: Callable[..., Agent]) -> None:
    agent = make_agent("Helper", instructions="Be brief.", tools=["http", "sql"])
    request = ExecutionRequest(agent_id=agent.agent_id, task="Count rows", context={"table": "t"})

    system, user = build_messages(agent, request)

    assert system["role"] == "system"
    assert system["content"].startswith("Be brief.")
    assert "Available tools: http, sql" in system["content"]
    assert user["content"].startswith("Count rows")
    assert '"table": "t"' in user["content"]


def test_llm_executor_uses_provider_chat(make_agent: Callable[..., Agent]) -> None:
    provider = Mock(spec=LLMProvider)
    provider.chat.return_value = "42 rows"
    agent = make_agent("Counter")
    request = ExecutionRequest(agent_id=agent.agent_id, task="Count rows")

    outcome = asyncio.run(LLMAgentExecutor(provider, max_tokens=64).execute(agent, request))

    assert outcome == AgentTaskOutcome(success=True, output="42 rows")
    messages, max_tokens = provider.chat.call_args.args
    assert max_tokens == 64
    assert messages[1]["content"] == "Count rows"


def test_callable_executor_wraps_plain_values(make_agent: Callable[..., Agent]) -> None:
    agent = make_agent("Echo")
    request = ExecutionRequest(agent_id=agent.agent_id, task="ping")

    async def echo(a: Agent, r: ExecutionRequest) -> str:
        return r.task.upper()

    async def refuse(a: Agent, r: ExecutionRequest) -> AgentTaskOutcome:
        return AgentTaskOutcome(success=False, error="no")

    assert asyncio.run(CallableAgentExecutor(echo).execute(agent, request)).output == "PING"
    assert not asyncio.run(CallableAgentExecutor(refuse).execute(agent, request)).success


def test_unconfigured_executor_is_an_infrastructure_error(
    make_agent: Callable[..., Agent],
) -> None:
    agent = make_agent("Idle")
    request = ExecutionRequest(agent_id=agent.agent_id, task="anything")
    with pytest.raises(InfrastructureError):
        asyncio.run(UnconfiguredExecutor().execute(agent, request))
