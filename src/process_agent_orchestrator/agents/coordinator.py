"""Dispatches single tasks to agents and tracks their results and metrics.

Agent-side failures (an executor error, a negative outcome, a timeout) are
*successful* coordinator calls carrying a failed :class:`ExecutionResult`.
Only lookup, validation and infrastructure problems fail the call itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from process_agent_orchestrator.agents.executors import AgentExecutor
from process_agent_orchestrator.agents.models import (
    Agent,
    AgentMetrics,
    ExecutionRequest,
    ExecutionResult,
    ExecutionStatus,
)
from process_agent_orchestrator.agents.registry import AgentRegistry
from process_agent_orchestrator.core.config import CoordinationConfig
from process_agent_orchestrator.core.errors import (
    ConflictError,
    DomainValidationError,
    InfrastructureError,
    NotFoundError,
    TaskTimeoutError,
)
from process_agent_orchestrator.core.events import EventPublisher, EventType
from process_agent_orchestrator.core.result import Result, result_boundary

logger = logging.getLogger(__name__)


@dataclass
class _LoopPrimitives:
    """asyncio primitives for the loop currently driving the coordinator."""

    slots: dict[tuple[str, int], asyncio.Semaphore] = field(default_factory=dict)
    metric_locks: dict[str, asyncio.Lock] = field(default_factory=dict)


class TaskExecutionCoordinator:
    def __init__(
        self,
        registry: AgentRegistry,
        executor: AgentExecutor,
        config: CoordinationConfig | None = None,
        events: EventPublisher | None = None,
    ) -> None:
        self._registry = registry
        self._executor = executor
        self._config = config or CoordinationConfig()
        self._events = events or EventPublisher()
        self._results: dict[str, ExecutionResult] = {}
        self._tasks: dict[str, asyncio.Task[ExecutionResult]] = {}
        self._loop_ref: weakref.ref[asyncio.AbstractEventLoop] | None = None
        self._primitives = _LoopPrimitives()

    # --- internals ---------------------------------------------------------

    def _loop_primitives(self) -> _LoopPrimitives:
        loop = asyncio.get_running_loop()
        if self._loop_ref is None or self._loop_ref() is not loop:
            self._loop_ref = weakref.ref(loop)
            self._primitives = _LoopPrimitives()
        return self._primitives

    def _remember(self, result: ExecutionResult) -> None:
        """Store a result, evicting the oldest finished ones past the retention limit."""
        self._results.pop(result.execution_id, None)
        self._results[result.execution_id] = result
        overflow = len(self._results) - self._config.max_retained_results
        if overflow <= 0:
            return
        evictable = [
            execution_id
            for execution_id, kept in self._results.items()
            if kept.status != ExecutionStatus.RUNNING
            and execution_id not in self._tasks
            and execution_id != result.execution_id
        ]
        for execution_id in evictable[:overflow]:
            del self._results[execution_id]

    def _slot(self, agent: Agent) -> asyncio.Semaphore:
        capacity = agent.capabilities.max_concurrent_tasks
        slots = self._loop_primitives().slots
        return slots.setdefault((agent.agent_id, capacity), asyncio.Semaphore(capacity))

    def _metric_lock(self, agent_id: str) -> asyncio.Lock:
        return self._loop_primitives().metric_locks.setdefault(agent_id, asyncio.Lock())

    def _prepare(
        self,
        agent_id: str,
        task: str,
        context: dict[str, Any] | None,
        priority: int,
        timeout_ms: int | None,
        required_capabilities: Iterable[str],
    ) -> tuple[Agent, ExecutionRequest]:
        if not task or not task.strip():
            raise DomainValidationError("Task description is required")
        if not 0 <= priority <= 10:
            raise DomainValidationError("Priority must be between 0 and 10")
        if timeout_ms is not None and not 1 <= timeout_ms <= self._config.max_task_timeout_ms:
            raise DomainValidationError(
                f"timeout_ms must be between 1 and {self._config.max_task_timeout_ms}"
            )

        request = ExecutionRequest(
            agent_id=agent_id,
            task=task,
            context=dict(context or {}),
            priority=priority,
            timeout_ms=timeout_ms,
            required_capabilities=[c for c in required_capabilities if c.strip()],
        )
        agent = self._registry.get(agent_id).unwrap()
        if not agent.enabled:
            raise ConflictError(f"Agent '{agent.name}' is disabled")
        missing = [c for c in request.required_capabilities if not agent.offers(c)]
        if missing:
            raise ConflictError(
                f"Agent '{agent.name}' lacks required capabilities: " + ", ".join(missing)
            )
        return agent, request

    def _effective_timeout_ms(self, agent: Agent, request: ExecutionRequest) -> int:
        requested = request.timeout_ms or self._config.default_task_timeout_ms
        return min(requested, agent.capabilities.timeout_ms)

    async def _run(self, agent: Agent, request: ExecutionRequest) -> ExecutionResult:
        slot = self._slot(agent)
        queued = slot.locked()
        if queued:
            logger.info(
                "Agent at capacity; task queued",
                extra={"agent_id": agent.agent_id, "execution_id": request.execution_id},
            )
        self._results[request.execution_id] = ExecutionResult(
            execution_id=request.execution_id,
            agent_id=agent.agent_id,
            status=ExecutionStatus.RUNNING,
            queued=queued,
        )

        timeout_ms = self._effective_timeout_ms(agent, request)
        output: Any = None
        error: str | None = None
        capabilities_used = list(request.required_capabilities)
        context_accessed = sorted(request.context)
        self._registry.mark_in_flight(agent.agent_id)
        try:
            async with slot:
                started_at = datetime.now(tz=UTC)
                started = time.monotonic()
                try:
                    outcome = await asyncio.wait_for(
                        self._executor.execute(agent, request), timeout=timeout_ms / 1000
                    )
                    status = (
                        ExecutionStatus.COMPLETED if outcome.success else ExecutionStatus.FAILED
                    )
                    output, error = outcome.output, outcome.error
                    if outcome.capabilities_used is not None:
                        capabilities_used = list(outcome.capabilities_used)
                    if outcome.context_accessed is not None:
                        context_accessed = list(outcome.context_accessed)
                except TimeoutError:
                    status = ExecutionStatus.TIMEOUT
                    error = f"Task timed out after {timeout_ms} ms"
                except InfrastructureError as exc:
                    self._results[request.execution_id] = self._results[
                        request.execution_id
                    ].model_copy(update={"status": ExecutionStatus.FAILED, "error": exc.message})
                    raise
                except Exception as exc:  # noqa: BLE001 (agent failure is reported, not raised)
                    logger.warning(
                        "Agent task failed",
                        extra={"agent_id": agent.agent_id, "error": str(exc)},
                    )
                    status = ExecutionStatus.FAILED
                    error = str(exc) or exc.__class__.__name__
                elapsed_ms = int((time.monotonic() - started) * 1000)
        finally:
            self._registry.release(agent.agent_id)

        result = ExecutionResult(
            execution_id=request.execution_id,
            agent_id=agent.agent_id,
            status=status,
            output=output,
            error=error,
            execution_time_ms=elapsed_ms,
            queued=queued,
            capabilities_used=capabilities_used,
            context_accessed=context_accessed,
            started_at=started_at,
            completed_at=datetime.now(tz=UTC),
        )
        self._remember(result)

        async with self._metric_lock(agent.agent_id):
            self._registry.record_execution(
                agent.agent_id,
                success=result.success,
                execution_time_ms=elapsed_ms,
                timed_out=status == ExecutionStatus.TIMEOUT,
            ).unwrap()

        self._events.publish(
            EventType.TASK_EXECUTED,
            execution_id=result.execution_id,
            agent_id=agent.agent_id,
            status=status.value,
            execution_time_ms=elapsed_ms,
        )
        return result

    # --- operations ----------------------------------------------------------

    @result_boundary
    async def execute_task(
        self,
        agent_id: str,
        task: str,
        *,
        context: dict[str, Any] | None = None,
        priority: int = 5,
        timeout_ms: int | None = None,
        required_capabilities: Iterable[str] = (),
    ) -> Result[ExecutionResult]:
        agent, request = self._prepare(
            agent_id, task, context, priority, timeout_ms, required_capabilities
        )
        return Result.success(await self._run(agent, request))

    @result_boundary
    async def submit_task(
        self,
        agent_id: str,
        task: str,
        *,
        context: dict[str, Any] | None = None,
        priority: int = 5,
        timeout_ms: int | None = None,
        required_capabilities: Iterable[str] = (),
    ) -> Result[str]:
        """Start a task in the background and return its execution id."""
        agent, request = self._prepare(
            agent_id, task, context, priority, timeout_ms, required_capabilities
        )
        self._results[request.execution_id] = ExecutionResult(
            execution_id=request.execution_id,
            agent_id=agent_id,
            status=ExecutionStatus.RUNNING,
        )
        self._tasks[request.execution_id] = asyncio.create_task(self._run(agent, request))
        return Result.success(request.execution_id)

    @result_boundary
    async def wait_for(
        self, execution_id: str, *, timeout_ms: int | None = None
    ) -> Result[ExecutionResult]:
        """Await a submitted task. The task keeps running if the wait times out."""
        task = self._tasks.get(execution_id)
        if task is None:
            return self.get_execution_result(execution_id)
        timeout = timeout_ms / 1000 if timeout_ms is not None else None
        try:
            result = await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except TimeoutError as e:
            raise TaskTimeoutError(
                f"Execution '{execution_id}' did not finish within {timeout_ms} ms"
            ) from e
        self._tasks.pop(execution_id, None)
        return Result.success(result)

    @result_boundary
    def get_execution_result(self, execution_id: str) -> Result[ExecutionResult]:
        result = self._results.get(execution_id)
        if result is None:
            raise NotFoundError(f"Execution '{execution_id}' not found")
        if result.status == ExecutionStatus.RUNNING:
            raise ConflictError(f"Execution '{execution_id}' is still executing")
        return Result.success(result)

    @result_boundary
    def get_agent_metrics(self, agent_id: str) -> Result[AgentMetrics]:
        return Result.success(self._registry.get(agent_id).unwrap().metrics)

    def active_count(self, agent_id: str) -> int:
        return self._registry.in_flight_count(agent_id)
