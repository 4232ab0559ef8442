"""Multi-stage workflow coordination across agents.

A plan groups tasks into numbered stages. Stages always run in ascending
order and a stage only starts after the previous one completed. The plan's
execution mode decides how tasks *within* a stage run: one after another
(``sequential``) or concurrently (``parallel``). Any task failure fails its
stage and halts the workflow; later stages stay pending.

Synchronization points run a named action after a stage completes and
before the next one starts.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from process_agent_orchestrator.agents.coordinator import TaskExecutionCoordinator
from process_agent_orchestrator.agents.discovery import DiscoveryEngine
from process_agent_orchestrator.agents.models import ExecutionResult, ExecutionStatus
from process_agent_orchestrator.agents.registry import AgentRegistry
from process_agent_orchestrator.core.config import CoordinationConfig
from process_agent_orchestrator.core.errors import (
    ConflictError,
    DomainValidationError,
    ErrorKind,
    ExecutionCountMismatchError,
    InfrastructureError,
)
from process_agent_orchestrator.core.events import EventPublisher, EventType
from process_agent_orchestrator.core.result import Result, result_boundary
from process_agent_orchestrator.model.values import ExecutionMode
from process_agent_orchestrator.orchestrator.workflow.state_machine import (
    StageSnapshot,
    StageState,
    transition,
)

logger = logging.getLogger(__name__)

MAX_STAGE_NUMBER = 100


class WorkflowTask(BaseModel):
    stage: int = Field(ge=1, le=MAX_STAGE_NUMBER)
    description: str = Field(min_length=1)
    agent_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(default=5, ge=0, le=10)
    timeout_ms: int | None = Field(default=None, ge=1)
    required_capabilities: list[str] = Field(default_factory=list)

    @field_validator("description")
    @classmethod
    def _description_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("task description must not be blank")
        return value


class SynchronizationPoint(BaseModel):
    after_stage: int = Field(ge=1, le=MAX_STAGE_NUMBER)
    action: str = Field(min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)


class WorkflowExecutionPlan(BaseModel):
    workflow_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    tasks: list[WorkflowTask] = Field(default_factory=list)
    sync_points: list[SynchronizationPoint] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def stages(self) -> dict[int, list[WorkflowTask]]:
        grouped: dict[int, list[WorkflowTask]] = {}
        for task in self.tasks:
            grouped.setdefault(task.stage, []).append(task)
        return dict(sorted(grouped.items()))


@dataclass(frozen=True, slots=True)
class SyncContext:
    workflow_id: str
    stage: int
    parameters: Mapping[str, Any]
    results: Mapping[int, list[ExecutionResult]]


SyncAction = Callable[[SyncContext], Awaitable[Any] | Any]


@dataclass
class StageReport:
    stage: int
    state: StageState = StageState.PENDING
    results: list[ExecutionResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    error: str | None = None
    sync_action: str | None = None
    sync_ok: bool | None = None
    sync_output: Any = None
    sync_error: str | None = None

    def to_json(self) -> dict[str, object]:
        return {
            "stage": self.stage,
            "state": self.state.value,
            "results": [r.model_dump(mode="json") for r in self.results],
            "skipped": list(self.skipped),
            "error": self.error,
            "sync_action": self.sync_action,
            "sync_ok": self.sync_ok,
            "sync_error": self.sync_error,
        }


@dataclass
class WorkflowReport:
    workflow_id: str
    execution_mode: ExecutionMode
    status: str
    stages: list[StageReport]
    started_at: datetime
    completed_at: datetime
    errors: list[str] = field(default_factory=list)

    @property
    def results(self) -> list[ExecutionResult]:
        return [r for s in self.stages for r in s.results]

    def stage(self, number: int) -> StageReport:
        for report in self.stages:
            if report.stage == number:
                return report
        raise KeyError(number)

    def to_json(self) -> dict[str, object]:
        return {
            "workflow_id": self.workflow_id,
            "execution_mode": self.execution_mode.value,
            "status": self.status,
            "stages": [s.to_json() for s in self.stages],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "errors": list(self.errors),
        }


def _failed_result(agent_id: str, error: str) -> ExecutionResult:
    return ExecutionResult(
        execution_id=uuid.uuid4().hex,
        agent_id=agent_id,
        status=ExecutionStatus.FAILED,
        error=error,
        completed_at=datetime.now(tz=UTC),
    )


class WorkflowCoordinationEngine:
    def __init__(
        self,
        registry: AgentRegistry,
        coordinator: TaskExecutionCoordinator,
        *,
        config: CoordinationConfig | None = None,
        events: EventPublisher | None = None,
        discovery: DiscoveryEngine | None = None,
        sync_actions: Mapping[str, SyncAction] | None = None,
    ) -> None:
        self._registry = registry
        self._coordinator = coordinator
        self._config = config or CoordinationConfig()
        self._events = events or EventPublisher()
        self._discovery = discovery
        self._sync_actions: dict[str, SyncAction] = dict(sync_actions or {})

    def register_sync_action(self, name: str, action: SyncAction) -> None:
        if not name.strip():
            raise DomainValidationError("Synchronization action name is required")
        self._sync_actions[name] = action

    @property
    def sync_action_names(self) -> list[str]:
        return sorted(self._sync_actions)

    # --- validation ----------------------------------------------------------

    def _check_plan(self, plan: WorkflowExecutionPlan) -> dict[int, list[WorkflowTask]]:
        limit = self._config.max_tasks_per_workflow
        if not 1 <= len(plan.tasks) <= limit:
            raise DomainValidationError(f"Workflow must contain between 1 and {limit} tasks")

        stages = plan.stages()
        if plan.execution_mode == ExecutionMode.SEQUENTIAL:
            for expected, actual in enumerate(stages, start=1):
                if expected != actual:
                    raise DomainValidationError(
                        "Sequential stages must be consecutive starting from 1; "
                        f"missing stage {expected}"
                    )

        synced: set[int] = set()
        for point in plan.sync_points:
            if point.after_stage in synced:
                raise DomainValidationError(
                    f"Stage {point.after_stage} has more than one synchronization point"
                )
            synced.add(point.after_stage)
            if point.after_stage not in stages:
                raise DomainValidationError(
                    f"Synchronization point references unknown stage {point.after_stage}"
                )
            if point.action not in self._sync_actions:
                raise DomainValidationError(
                    f"Unknown synchronization action '{point.action}'"
                )

        for index, task in enumerate(plan.tasks, start=1):
            if not task.agent_id or not task.agent_id.strip():
                raise DomainValidationError(f"Task {index} has no agent assigned")
            agent = self._registry.get(task.agent_id).unwrap()
            if not agent.enabled:
                raise ConflictError(f"Agent '{agent.name}' assigned to task {index} is disabled")
        return stages

    @result_boundary
    def validate_plan(self, plan: WorkflowExecutionPlan) -> Result[dict[int, list[WorkflowTask]]]:
        return Result.success(self._check_plan(plan))

    @result_boundary
    def resolve_plan(self, plan: WorkflowExecutionPlan) -> Result[WorkflowExecutionPlan]:
        """Assign an agent to every task that only names required capabilities."""
        if self._discovery is None:
            raise InfrastructureError("No discovery engine is configured")
        tasks = []
        for index, task in enumerate(plan.tasks, start=1):
            if task.agent_id:
                tasks.append(task)
                continue
            if not task.required_capabilities:
                raise DomainValidationError(
                    f"Task {index} needs either an agent_id or required capabilities"
                )
            agent = self._discovery.best_agent_for(task.required_capabilities).unwrap()
            tasks.append(task.model_copy(update={"agent_id": agent.agent_id}))
        return Result.success(plan.model_copy(update={"tasks": tasks}))

    # --- execution -----------------------------------------------------------

    async def _execute(self, task: WorkflowTask) -> ExecutionResult | None:
        """Dispatch one task; None means the coordinator reported no result."""
        assert task.agent_id is not None
        outcome = await self._coordinator.execute_task(
            task.agent_id,
            task.description,
            context=task.context,
            priority=task.priority,
            timeout_ms=task.timeout_ms,
            required_capabilities=task.required_capabilities,
        )
        if outcome.ok:
            return outcome.value
        if outcome.kind == ErrorKind.INFRASTRUCTURE:
            raise InfrastructureError(outcome.error or "task dispatch failed")
        return _failed_result(task.agent_id, outcome.error or "task dispatch failed")

    async def _run_stage(
        self, mode: ExecutionMode, tasks: list[WorkflowTask]
    ) -> tuple[int, list[ExecutionResult], list[WorkflowTask]]:
        """Run one stage.

        Returns the number of dispatched tasks, the results that came back and
        the tasks that were never started. Parallel siblings all report before
        an infrastructure error is re-raised.
        """
        if mode == ExecutionMode.PARALLEL:
            pending = [asyncio.ensure_future(self._execute(t)) for t in tasks]
            outcomes = await asyncio.gather(*pending, return_exceptions=True)
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            return len(pending), [o for o in outcomes if o is not None], []

        dispatched = 0
        results: list[ExecutionResult] = []
        for index, task in enumerate(tasks):
            dispatched += 1
            result = await self._execute(task)
            if result is None:
                continue
            results.append(result)
            if not result.success:
                return dispatched, results, tasks[index + 1 :]
        return dispatched, results, []

    async def _run_sync_action(
        self,
        plan: WorkflowExecutionPlan,
        point: SynchronizationPoint,
        reports: list[StageReport],
    ) -> StageReport:
        report = next(r for r in reports if r.stage == point.after_stage)
        report.sync_action = point.action
        ctx = SyncContext(
            workflow_id=plan.workflow_id,
            stage=point.after_stage,
            parameters=dict(point.parameters),
            results={r.stage: list(r.results) for r in reports},
        )
        try:
            out = self._sync_actions[point.action](ctx)
            if inspect.isawaitable(out):
                out = await out
        except Exception as exc:  # noqa: BLE001 (user-supplied action)
            report.sync_ok = False
            report.sync_error = str(exc) or exc.__class__.__name__
            logger.warning(
                "Synchronization action failed",
                extra={
                    "workflow_id": plan.workflow_id,
                    "stage": point.after_stage,
                    "action": point.action,
                    "error": report.sync_error,
                },
            )
        else:
            report.sync_ok = True
            report.sync_output = out
        return report

    @result_boundary
    async def coordinate(self, plan: WorkflowExecutionPlan) -> Result[WorkflowReport]:
        if self._discovery is not None and any(not t.agent_id for t in plan.tasks):
            plan = self.resolve_plan(plan).unwrap()
        stages = self._check_plan(plan)
        sync_by_stage = {p.after_stage: p for p in plan.sync_points}

        started_at = datetime.now(tz=UTC)
        reports = [StageReport(stage=n) for n in stages]
        errors: list[str] = []
        halted = False
        partial = False

        logger.info(
            "Coordinating workflow",
            extra={
                "workflow_id": plan.workflow_id,
                "mode": plan.execution_mode.value,
                "stages": len(stages),
                "tasks": len(plan.tasks),
            },
        )

        for report in reports:
            if halted:
                break
            snapshot = transition(
                current=StageSnapshot(stage=report.stage), to=StageState.RUNNING
            )
            report.state = snapshot.state

            dispatched, results, skipped = await self._run_stage(
                plan.execution_mode, stages[report.stage]
            )
            report.skipped = [t.description for t in skipped]
            if len(results) != dispatched:
                raise ExecutionCountMismatchError(
                    stage=report.stage, expected=dispatched, actual=len(results)
                )
            report.results = results

            failed = [r for r in results if not r.success]
            if failed:
                snapshot = transition(current=snapshot, to=StageState.FAILED)
                report.state = snapshot.state
                report.error = "; ".join(
                    f"{r.agent_id}: {r.error or r.status.value}" for r in failed
                )
                errors.append(f"Stage {report.stage} failed: {report.error}")
                halted = True
                continue

            snapshot = transition(current=snapshot, to=StageState.COMPLETED)
            report.state = snapshot.state
            self._events.publish(
                EventType.WORKFLOW_STAGE_COMPLETED,
                workflow_id=plan.workflow_id,
                stage=report.stage,
                tasks=len(results),
            )

            point = sync_by_stage.get(report.stage)
            if point is None:
                continue
            await self._run_sync_action(plan, point, reports)
            if report.sync_ok:
                continue
            errors.append(
                f"Synchronization '{point.action}' after stage {report.stage} failed: "
                f"{report.sync_error}"
            )
            if self._config.tolerate_sync_failures:
                partial = True
            else:
                halted = True

        status = "failed" if halted else ("partial" if partial else "completed")
        workflow_report = WorkflowReport(
            workflow_id=plan.workflow_id,
            execution_mode=plan.execution_mode,
            status=status,
            stages=reports,
            started_at=started_at,
            completed_at=datetime.now(tz=UTC),
            errors=errors,
        )
        self._events.publish(
            EventType.WORKFLOW_COORDINATED,
            workflow_id=plan.workflow_id,
            status=status,
            stages=len(reports),
        )
        logger.info(
            "Workflow finished", extra={"workflow_id": plan.workflow_id, "status": status}
        )
        return Result.success(workflow_report)
