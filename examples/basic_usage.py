#!/usr/bin/env python3
"""End-to-end example: build a model, register agents, run a two-stage workflow.

This demonstrates using the orchestrator components directly:

* build and publish a workflow model (input -> stage -> output)
* register two agents and rank them by capability
* coordinate a sequential workflow with a synchronization point

Agent work is simulated with a local async handler so no LLM key is needed.
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Sequence

from process_agent_orchestrator.agents.executors import CallableAgentExecutor
from process_agent_orchestrator.agents.models import (
    Agent,
    AgentCapabilities,
    AgentScope,
    AgentTools,
    ExecutionRequest,
    FeatureType,
)
from process_agent_orchestrator.agents.workflow_engine import (
    SyncContext,
    SynchronizationPoint,
    WorkflowExecutionPlan,
    WorkflowTask,
)
from process_agent_orchestrator.core.config import OrchestratorConfig, StoreConfig
from process_agent_orchestrator.core.orchestrator import Orchestrator
from process_agent_orchestrator.model.nodes import BoundaryNode, ExternalCallAction, StageNode


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the orchestrator end to end.")
    parser.add_argument("--state", type=Path, default=Path(".state-example"))
    return parser.parse_args(argv)


async def _simulate(agent: Agent, request: ExecutionRequest) -> str:
    await asyncio.sleep(0.01)
    return f"{agent.name} handled: {request.task}"


def _merge_results(ctx: SyncContext) -> int:
    return sum(len(results) for results in ctx.results.values())


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    config = OrchestratorConfig(store=StoreConfig(storage_path=args.state))
    orch = Orchestrator(
        config,
        executor=CallableAgentExecutor(_simulate),
        sync_actions={"merge-results": _merge_results},
    )

    model = orch.graph.create_model(name="Invoice intake").unwrap()
    mid = model.model_id
    orch.graph.add_node(
        mid, BoundaryNode(node_id="in", model_id=mid, name="Invoice", boundary_type="input")
    ).unwrap()
    orch.graph.add_node(mid, StageNode(node_id="review", model_id=mid, name="Review")).unwrap()
    orch.graph.add_node(
        mid, BoundaryNode(node_id="out", model_id=mid, name="Approved", boundary_type="output")
    ).unwrap()
    orch.graph.add_action_node(
        mid,
        ExternalCallAction(
            action_id="fetch",
            parent_node_id="review",
            model_id=mid,
            name="Fetch invoice",
            tether_reference_id="erp-connector",
        ),
    ).unwrap()
    orch.graph.create_edge(mid, source_id="in", target_id="review").unwrap()
    orch.graph.create_edge(mid, source_id="review", target_id="out").unwrap()
    published = orch.graph.publish_model(mid, version="1.0.0", user_id="example")
    print(f"Published: {published.ok} ({published.error or model.name})")

    scope = AgentScope(feature_type=FeatureType.FUNCTION_MODEL, entity_id=mid)
    extractor = orch.registry.register(
        Agent(
            scope=scope,
            name="Extractor",
            instructions="Extract invoice fields.",
            tools=AgentTools(available_tools=["ocr"]),
            capabilities=AgentCapabilities(skills=["extraction"], supported_data_types=["pdf"]),
        )
    ).unwrap()
    auditor = orch.registry.register(
        Agent(
            scope=scope,
            name="Auditor",
            instructions="Check invoices against policy.",
            tools=AgentTools(available_tools=["rules"]),
            capabilities=AgentCapabilities(can_analyze=True, domains=["compliance"]),
        )
    ).unwrap()

    for match in orch.discovery.discover(required_capabilities=["extraction"]).unwrap():
        print(f"Discovered {match.agent.name}: {match.score:.2f}")

    plan = WorkflowExecutionPlan(
        tasks=[
            WorkflowTask(stage=1, agent_id=extractor.agent_id, description="Extract fields"),
            WorkflowTask(stage=2, agent_id=auditor.agent_id, description="Audit invoice"),
        ],
        sync_points=[SynchronizationPoint(after_stage=1, action="merge-results")],
    )
    report = asyncio.run(orch.workflows.coordinate(plan)).unwrap()
    print(f"Workflow {report.workflow_id}: {report.status}")
    for result in report.results:
        print(f"  {result.agent_id}: {result.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
