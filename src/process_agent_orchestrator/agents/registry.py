"""The agent registry: an explicit, injectable handle over registered agents.

The registry keeps an in-memory index and writes through to an optional
:class:`AgentStore`. A write that fails to persist leaves the index unchanged.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from process_agent_orchestrator.agents.models import Agent, AgentMetrics, FeatureType
from process_agent_orchestrator.agents.store import AgentStore
from process_agent_orchestrator.core.errors import (
    ConflictError,
    DomainValidationError,
    NotFoundError,
)
from process_agent_orchestrator.core.events import EventPublisher, EventType
from process_agent_orchestrator.core.result import Result, result_boundary

logger = logging.getLogger(__name__)


def _check_required_fields(agent: Agent) -> None:
    if not agent.name.strip():
        raise DomainValidationError("Agent name is required")
    if not agent.instructions.strip():
        raise DomainValidationError("Agent instructions are required")
    if not agent.tools.available_tools:
        raise DomainValidationError("Agent must have at least one available tool")


class AgentRegistry:
    def __init__(
        self,
        store: AgentStore | None = None,
        events: EventPublisher | None = None,
    ) -> None:
        self._store = store
        self._events = events or EventPublisher()
        self._lock = threading.RLock()
        self._in_flight: Counter[str] = Counter()
        self._agents: dict[str, Agent] = {}
        if store is not None:
            self._agents = {a.agent_id: a for a in store.load_all()}

    # --- internals ---------------------------------------------------------

    def _commit(self, agents: dict[str, Agent]) -> None:
        if self._store is not None:
            self._store.save_all(sorted(agents.values(), key=lambda a: a.agent_id))
        self._agents = agents

    def _require(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent '{agent_id}' not found")
        return agent

    def _check_unique(self, agent: Agent, agents: dict[str, Agent]) -> None:
        name = agent.name.strip().lower()
        for other in agents.values():
            if other.agent_id == agent.agent_id:
                continue
            if other.scope == agent.scope and other.name.strip().lower() == name:
                raise ConflictError(
                    f"An agent named '{agent.name}' already exists in scope "
                    f"{agent.scope.feature_type.value}/{agent.scope.entity_id}"
                )

    def _select(self, predicate: Callable[[Agent], bool]) -> list[Agent]:
        with self._lock:
            agents = [a for a in self._agents.values() if predicate(a)]
        return sorted(agents, key=lambda a: (a.name.lower(), a.agent_id))

    # --- writes ------------------------------------------------------------

    @result_boundary
    def register(self, agent: Agent) -> Result[Agent]:
        _check_required_fields(agent)
        with self._lock:
            if agent.agent_id in self._agents:
                raise ConflictError(f"Agent '{agent.agent_id}' is already registered")
            self._check_unique(agent, self._agents)
            self._commit({**self._agents, agent.agent_id: agent})
        logger.info(
            "Agent registered",
            extra={"agent_id": agent.agent_id, "agent_name": agent.name},
        )
        self._events.publish(
            EventType.AGENT_REGISTERED,
            agent_id=agent.agent_id,
            name=agent.name,
            feature_type=agent.scope.feature_type.value,
            entity_id=agent.scope.entity_id,
        )
        return Result.success(agent)

    @result_boundary
    def update(self, agent: Agent) -> Result[Agent]:
        _check_required_fields(agent)
        with self._lock:
            self._require(agent.agent_id)
            self._check_unique(agent, self._agents)
            updated = agent.model_copy(update={"updated_at": datetime.now(tz=UTC)})
            self._commit({**self._agents, agent.agent_id: updated})
        return Result.success(updated)

    @result_boundary
    def save_many(self, agents: Iterable[Agent]) -> Result[list[Agent]]:
        """Insert or update several agents as one write."""
        batch = list(agents)
        with self._lock:
            merged = dict(self._agents)
            for agent in batch:
                _check_required_fields(agent)
                merged[agent.agent_id] = agent
            for agent in batch:
                self._check_unique(agent, merged)
            self._commit(merged)
        return Result.success(batch)

    @result_boundary
    def delete(self, agent_id: str) -> Result[Agent]:
        with self._lock:
            agent = self._require(agent_id)
            if self._in_flight[agent_id]:
                raise ConflictError(
                    f"Agent '{agent_id}' has {self._in_flight[agent_id]} executions in flight"
                )
            remaining = dict(self._agents)
            del remaining[agent_id]
            self._commit(remaining)
        self._events.publish(EventType.AGENT_DELETED, agent_id=agent_id)
        return Result.success(agent)

    @result_boundary
    def delete_many(self, agent_ids: Iterable[str]) -> Result[list[str]]:
        ids = list(dict.fromkeys(agent_ids))
        with self._lock:
            for agent_id in ids:
                self._require(agent_id)
                if self._in_flight[agent_id]:
                    raise ConflictError(f"Agent '{agent_id}' has executions in flight")
            self._commit({k: v for k, v in self._agents.items() if k not in ids})
        for agent_id in ids:
            self._events.publish(EventType.AGENT_DELETED, agent_id=agent_id)
        return Result.success(ids)

    def _set_enabled(self, agent_id: str, enabled: bool) -> Agent:
        with self._lock:
            agent = self._require(agent_id)
            updated = agent.model_copy(
                update={"enabled": enabled, "updated_at": datetime.now(tz=UTC)}
            )
            self._commit({**self._agents, agent_id: updated})
        self._events.publish(
            EventType.AGENT_ENABLED if enabled else EventType.AGENT_DISABLED, agent_id=agent_id
        )
        return updated

    @result_boundary
    def enable(self, agent_id: str) -> Result[Agent]:
        return Result.success(self._set_enabled(agent_id, True))

    @result_boundary
    def disable(self, agent_id: str) -> Result[Agent]:
        return Result.success(self._set_enabled(agent_id, False))

    @result_boundary
    def record_execution(
        self,
        agent_id: str,
        *,
        success: bool,
        execution_time_ms: int,
        timed_out: bool = False,
    ) -> Result[AgentMetrics]:
        with self._lock:
            agent = self._require(agent_id)
            m = agent.metrics
            metrics = AgentMetrics(
                execution_count=m.execution_count + 1,
                success_count=m.success_count + (1 if success else 0),
                failure_count=m.failure_count + (0 if success or timed_out else 1),
                timeout_count=m.timeout_count + (1 if timed_out else 0),
                total_execution_time_ms=m.total_execution_time_ms + max(0, execution_time_ms),
                last_execution_at=datetime.now(tz=UTC),
            )
            self._commit({**self._agents, agent_id: agent.model_copy(update={"metrics": metrics})})
        return Result.success(metrics)

    # --- in-flight tracking --------------------------------------------------

    def mark_in_flight(self, agent_id: str) -> None:
        with self._lock:
            self._in_flight[agent_id] += 1

    def release(self, agent_id: str) -> None:
        with self._lock:
            if self._in_flight[agent_id] > 0:
                self._in_flight[agent_id] -= 1
            if self._in_flight[agent_id] == 0:
                self._in_flight.pop(agent_id, None)

    def in_flight_count(self, agent_id: str) -> int:
        with self._lock:
            return self._in_flight.get(agent_id, 0)

    # --- reads ---------------------------------------------------------------

    @result_boundary
    def get(self, agent_id: str) -> Result[Agent]:
        with self._lock:
            return Result.success(self._require(agent_id))

    @result_boundary
    def list_all(self) -> Result[list[Agent]]:
        return Result.success(self._select(lambda a: True))

    @result_boundary
    def find_by_scope(
        self, feature_type: FeatureType, entity_id: str, node_id: str | None = None
    ) -> Result[list[Agent]]:
        return Result.success(
            self._select(
                lambda a: a.scope.feature_type == feature_type
                and a.scope.entity_id == entity_id
                and (node_id is None or a.scope.node_id == node_id)
            )
        )

    @result_boundary
    def find_by_node(self, node_id: str) -> Result[list[Agent]]:
        return Result.success(self._select(lambda a: a.scope.node_id == node_id))

    @result_boundary
    def find_by_capability(self, capability: str) -> Result[list[Agent]]:
        """Agents with a capability tag containing ``capability`` (case-insensitive)."""
        needle = capability.strip().lower()
        if not needle:
            raise DomainValidationError("capability must not be empty")
        return Result.success(
            self._select(
                lambda a: a.offers(needle) or any(needle in tag for tag in a.capability_tags())
            )
        )

    @result_boundary
    def find_by_tool(self, tool: str) -> Result[list[Agent]]:
        return Result.success(self._select(lambda a: tool in a.tools.available_tools))

    @result_boundary
    def find_enabled(self) -> Result[list[Agent]]:
        return Result.success(self._select(lambda a: a.enabled))

    @result_boundary
    def find_disabled(self) -> Result[list[Agent]]:
        return Result.success(self._select(lambda a: not a.enabled))

    @result_boundary
    def find_recently_executed(self, within: timedelta) -> Result[list[Agent]]:
        cutoff = datetime.now(tz=UTC) - within
        return Result.success(
            self._select(
                lambda a: a.metrics.last_execution_at is not None
                and a.metrics.last_execution_at >= cutoff
            )
        )

    @result_boundary
    def find_by_success_rate(self, min_rate: float) -> Result[list[Agent]]:
        if not 0.0 <= min_rate <= 1.0:
            raise DomainValidationError("min_rate must be between 0 and 1")
        return Result.success(
            self._select(
                lambda a: a.metrics.execution_count > 0 and a.metrics.success_rate >= min_rate
            )
        )

    @result_boundary
    def find_by_execution_count(self, min_count: int) -> Result[list[Agent]]:
        return Result.success(self._select(lambda a: a.metrics.execution_count >= min_count))

    @result_boundary
    def count(self) -> Result[int]:
        with self._lock:
            return Result.success(len(self._agents))

    @result_boundary
    def count_by_feature(self) -> Result[dict[str, int]]:
        with self._lock:
            counts = Counter(a.scope.feature_type.value for a in self._agents.values())
        return Result.success({ft.value: counts.get(ft.value, 0) for ft in FeatureType})
