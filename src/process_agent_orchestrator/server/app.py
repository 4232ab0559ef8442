"""FastAPI app factory.

Endpoints are intentionally thin wrappers over the orchestrator services.
Every service call returns a ``Result``; failures map to HTTP status codes by
error kind.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, TypeVar

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from process_agent_orchestrator import __version__
from process_agent_orchestrator.agents.discovery import AgentMatch
from process_agent_orchestrator.agents.models import (
    Agent,
    AgentCapabilities,
    AgentScope,
    AgentTools,
    ExecutionResult,
    FeatureType,
)
from process_agent_orchestrator.agents.workflow_engine import (
    SynchronizationPoint,
    WorkflowExecutionPlan,
    WorkflowReport,
    WorkflowTask,
)
from process_agent_orchestrator.core.errors import ErrorKind
from process_agent_orchestrator.core.orchestrator import Orchestrator
from process_agent_orchestrator.core.result import Result
from process_agent_orchestrator.model.connections import Connection
from process_agent_orchestrator.model.nodes import (
    ActionNode,
    ContainerNode,
    action_node_adapter,
    container_node_adapter,
)
from process_agent_orchestrator.model.values import ExecutionMode
from process_agent_orchestrator.model.workflow import WorkflowModel
from process_agent_orchestrator.server.config import ServerSettings
from process_agent_orchestrator.server.models import (
    ApiAction,
    ApiAgent,
    ApiAgentMatch,
    ApiEdge,
    ApiExecution,
    ApiMetrics,
    ApiModel,
    ApiNode,
    ApiSearchResponse,
    ApiSemanticMatch,
    ApiStage,
    ApiValidation,
    ApiWorkflowReport,
    CoordinateWorkflowRequest,
    CreateActionRequest,
    CreateEdgeRequest,
    CreateModelRequest,
    CreateNodeRequest,
    DeleteModelRequest,
    DiscoverRequest,
    ExecuteTaskRequest,
    PublishRequest,
    RegisterAgentRequest,
    SearchRequest,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INFRASTRUCTURE: 503,
    ErrorKind.TIMEOUT: 504,
}


def _unwrap(result: Result[T]) -> T:
    if result.ok:
        return result.value  # type: ignore[return-value]
    kind = result.kind or ErrorKind.INFRASTRUCTURE
    raise HTTPException(
        status_code=STATUS_BY_KIND[kind],
        detail={"error": result.error, "kind": kind.value},
    )


def _invalid(exc: ValidationError | ValueError) -> HTTPException:
    return HTTPException(
        status_code=422, detail={"error": str(exc), "kind": ErrorKind.VALIDATION.value}
    )


def _feature_type(value: str | None) -> FeatureType | None:
    if value is None:
        return None
    try:
        return FeatureType(value)
    except ValueError as e:
        raise _invalid(e) from e


def _to_api_model(model: WorkflowModel) -> ApiModel:
    return ApiModel(
        model_id=model.model_id,
        name=model.name,
        description=model.description,
        version=model.version,
        status=model.status.value,
        current_version=model.current_version,
        node_count=len(model.nodes),
        action_count=len(model.actions),
        created_at=model.created_at,
        updated_at=model.updated_at,
        deleted_at=model.deleted_at,
    )


def _to_api_node(node: ContainerNode) -> ApiNode:
    return ApiNode(
        node_id=node.node_id,
        model_id=node.model_id,
        kind=node.kind,
        name=node.name,
        description=node.description,
        dependencies=sorted(node.dependencies),
        status=node.status.value,
    )


def _to_api_action(action: ActionNode) -> ApiAction:
    return ApiAction(
        action_id=action.action_id,
        parent_node_id=action.parent_node_id,
        model_id=action.model_id,
        kind=action.kind,
        name=action.name,
        execution_order=action.execution_order,
        priority=action.priority,
        status=action.status.value,
    )


def _to_api_edge(connection: Connection) -> ApiEdge:
    return ApiEdge.model_validate(connection.model_dump(mode="json"))


def _to_api_agent(agent: Agent) -> ApiAgent:
    return ApiAgent(
        agent_id=agent.agent_id,
        feature_type=agent.scope.feature_type.value,
        entity_id=agent.scope.entity_id,
        node_id=agent.scope.node_id,
        name=agent.name,
        description=agent.description,
        enabled=agent.enabled,
        available_tools=list(agent.tools.available_tools),
        capabilities=sorted(agent.capability_tags()),
        max_concurrent_tasks=agent.capabilities.max_concurrent_tasks,
        execution_count=agent.metrics.execution_count,
        success_rate=agent.metrics.success_rate,
    )


def _to_api_match(match: AgentMatch) -> ApiAgentMatch:
    return ApiAgentMatch(
        agent_id=match.agent.agent_id,
        name=match.agent.name,
        score=match.score,
        matching_capabilities=list(match.matching_capabilities),
        missing_capabilities=list(match.missing_capabilities),
        missing_optional=list(match.missing_optional),
        current_load=match.current_load,
    )


def _to_api_execution(result: ExecutionResult) -> ApiExecution:
    return ApiExecution(
        execution_id=result.execution_id,
        agent_id=result.agent_id,
        status=result.status.value,
        success=result.success,
        output=result.output,
        error=result.error,
        execution_time_ms=result.execution_time_ms,
        queued=result.queued,
        capabilities_used=list(result.capabilities_used),
        context_accessed=list(result.context_accessed),
    )


def _to_api_report(report: WorkflowReport) -> ApiWorkflowReport:
    return ApiWorkflowReport(
        workflow_id=report.workflow_id,
        execution_mode=report.execution_mode.value,
        status=report.status,
        stages=[
            ApiStage(
                stage=s.stage,
                state=s.state.value,
                execution_ids=[r.execution_id for r in s.results],
                error=s.error,
                sync_action=s.sync_action,
                sync_ok=s.sync_ok,
                sync_error=s.sync_error,
            )
            for s in report.stages
        ],
        errors=list(report.errors),
    )


def _node_from_request(model_id: str, req: CreateNodeRequest) -> ContainerNode:
    payload: dict[str, Any] = {
        "kind": req.kind,
        "node_id": req.node_id or uuid.uuid4().hex,
        "model_id": model_id,
        "name": req.name,
        "description": req.description,
        "position": {"x": req.position_x, "y": req.position_y},
    }
    match req.kind:
        case "boundary":
            payload["boundary_type"] = req.boundary_type
        case "stage":
            payload.update(
                goals=req.goals,
                max_actions=req.max_actions,
                parallel_execution=req.parallel_execution,
            )
            if req.stage_type:
                payload["stage_type"] = req.stage_type
        case "nested_model":
            payload["nested_model_id"] = req.nested_model_id
    try:
        return container_node_adapter.validate_python(payload)
    except ValidationError as e:
        raise _invalid(e) from e


def _action_from_request(model_id: str, req: CreateActionRequest) -> ActionNode:
    payload: dict[str, Any] = {
        "kind": req.kind,
        "action_id": req.action_id or uuid.uuid4().hex,
        "parent_node_id": req.parent_node_id,
        "model_id": model_id,
        "name": req.name,
        "description": req.description,
        "execution_mode": req.execution_mode,
        "execution_order": req.execution_order,
        "priority": req.priority,
        "retry_policy": {
            "max_attempts": req.retry_max_attempts,
            "backoff_ms": req.retry_backoff_ms,
        },
        "raci": {"responsible": req.raci_responsible, "accountable": req.raci_accountable},
    }
    match req.kind:
        case "tether":
            payload["tether_reference_id"] = req.tether_reference_id
        case "kb":
            payload.update(
                kb_reference_id=req.kb_reference_id,
                short_description=req.short_description,
                documentation_context=req.documentation_context,
                access={"view": req.view_principals, "edit": req.edit_principals},
            )
        case "nested_invocation":
            payload["nested_model_id"] = req.nested_model_id
    try:
        return action_node_adapter.validate_python(payload)
    except ValidationError as e:
        raise _invalid(e) from e


def _agent_from_request(req: RegisterAgentRequest) -> Agent:
    try:
        scope = AgentScope(
            feature_type=FeatureType(req.feature_type),
            entity_id=req.entity_id,
            node_id=req.node_id,
        )
        fields: dict[str, Any] = {
            "scope": scope,
            "name": req.name,
            "description": req.description,
            "instructions": req.instructions,
            "tags": req.tags,
            "tools": AgentTools(
                available_tools=req.available_tools,
                tool_configurations=req.tool_configurations,
            ),
            "capabilities": AgentCapabilities(
                can_read=req.can_read,
                can_write=req.can_write,
                can_execute=req.can_execute,
                can_analyze=req.can_analyze,
                can_orchestrate=req.can_orchestrate,
                max_concurrent_tasks=req.max_concurrent_tasks,
                timeout_ms=req.timeout_ms,
                supported_data_types=req.supported_data_types,
                skills=req.skills,
                domains=req.domains,
                processing_modes=req.processing_modes,
            ),
        }
        if req.agent_id:
            fields["agent_id"] = req.agent_id
        return Agent(**fields)
    except (ValidationError, ValueError) as e:
        raise _invalid(e) from e


def create_app(orchestrator: Orchestrator | None = None) -> FastAPI:
    settings = ServerSettings()
    orch = orchestrator or Orchestrator()

    app = FastAPI(
        title="Process Agent Orchestrator",
        version=__version__,
        description="REST API over workflow models and agent orchestration.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    # Expose settings and services for request handlers that want to read them.
    app.state.settings = settings
    app.state.orchestrator = orch

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    graph = orch.graph

    @app.get("/api/health")
    def health() -> dict[str, object]:
        return {"status": "ok", "ok": True, "version": __version__}

    # --- workflow models ---------------------------------------------------

    @app.post("/api/models", response_model=ApiModel, status_code=201)
    def create_model(req: CreateModelRequest) -> ApiModel:
        model = _unwrap(
            graph.create_model(name=req.name, description=req.description, metadata=req.metadata)
        )
        return _to_api_model(model)

    @app.get("/api/models", response_model=list[ApiModel])
    def list_models(include_deleted: bool = False) -> list[ApiModel]:
        models = _unwrap(orch.models.list_all(include_deleted=include_deleted))
        return [_to_api_model(m) for m in models]

    @app.get("/api/models/deleted", response_model=list[ApiModel])
    def list_deleted_models() -> list[ApiModel]:
        return [_to_api_model(m) for m in _unwrap(orch.models.list_deleted())]

    @app.get("/api/models/{model_id}", response_model=ApiModel)
    def get_model(model_id: str) -> ApiModel:
        return _to_api_model(_unwrap(graph.get_model(model_id)))

    @app.get("/api/models/{model_id}/validation", response_model=ApiValidation)
    def validate_model(model_id: str) -> ApiValidation:
        report = _unwrap(graph.validate_model(model_id))
        return ApiValidation(
            is_valid=report.is_valid, errors=list(report.errors), warnings=list(report.warnings)
        )

    @app.post("/api/models/{model_id}/publish", response_model=ApiModel)
    def publish_model(model_id: str, req: PublishRequest) -> ApiModel:
        model = _unwrap(graph.publish_model(model_id, version=req.version, user_id=req.user_id))
        return _to_api_model(model)

    @app.post("/api/models/{model_id}/archive", response_model=ApiModel)
    def archive_model(model_id: str) -> ApiModel:
        return _to_api_model(_unwrap(graph.archive_model(model_id)))

    @app.post("/api/models/{model_id}/delete", response_model=ApiModel)
    def soft_delete_model(model_id: str, req: DeleteModelRequest) -> ApiModel:
        return _to_api_model(_unwrap(graph.soft_delete_model(model_id, user_id=req.user_id)))

    @app.post("/api/models/{model_id}/restore", response_model=ApiModel)
    def restore_model(model_id: str) -> ApiModel:
        return _to_api_model(_unwrap(graph.restore_model(model_id)))

    # --- nodes and edges ---------------------------------------------------

    @app.post("/api/models/{model_id}/nodes", response_model=ApiNode, status_code=201)
    def add_node(model_id: str, req: CreateNodeRequest) -> ApiNode:
        node = _node_from_request(model_id, req)
        return _to_api_node(_unwrap(graph.add_node(model_id, node)))

    @app.get("/api/models/{model_id}/nodes", response_model=list[ApiNode])
    def list_nodes(model_id: str) -> list[ApiNode]:
        model = _unwrap(graph.get_model(model_id))
        return [_to_api_node(n) for _, n in sorted(model.nodes.items())]

    @app.delete("/api/models/{model_id}/nodes/{node_id}")
    def remove_node(model_id: str, node_id: str) -> dict[str, object]:
        removed_actions = _unwrap(graph.remove_node(model_id, node_id))
        return {"node_id": node_id, "removed_actions": removed_actions}

    @app.post("/api/models/{model_id}/actions", response_model=ApiAction, status_code=201)
    def add_action(model_id: str, req: CreateActionRequest) -> ApiAction:
        action = _action_from_request(model_id, req)
        return _to_api_action(_unwrap(graph.add_action_node(model_id, action)))

    @app.delete("/api/models/{model_id}/actions/{action_id}", response_model=ApiAction)
    def remove_action(model_id: str, action_id: str) -> ApiAction:
        return _to_api_action(_unwrap(graph.remove_action_node(model_id, action_id)))

    @app.post("/api/models/{model_id}/edges", response_model=ApiEdge, status_code=201)
    def create_edge(model_id: str, req: CreateEdgeRequest) -> ApiEdge:
        connection = _unwrap(
            graph.create_edge(
                model_id,
                source_id=req.source_node_id,
                target_id=req.target_node_id,
                source_handle=req.source_handle,
                target_handle=req.target_handle,
            )
        )
        return _to_api_edge(connection)

    @app.get("/api/models/{model_id}/edges", response_model=list[ApiEdge])
    def list_edges(model_id: str) -> list[ApiEdge]:
        return [_to_api_edge(c) for c in _unwrap(graph.list_edges(model_id))]

    @app.delete("/api/models/{model_id}/edges/{connection_id}", response_model=ApiEdge)
    def delete_edge(model_id: str, connection_id: str) -> ApiEdge:
        return _to_api_edge(_unwrap(graph.delete_edge(model_id, connection_id)))

    # --- agents ------------------------------------------------------------

    @app.post("/api/agents", response_model=ApiAgent, status_code=201)
    def register_agent(req: RegisterAgentRequest) -> ApiAgent:
        return _to_api_agent(_unwrap(orch.registry.register(_agent_from_request(req))))

    @app.get("/api/agents", response_model=list[ApiAgent])
    def list_agents(
        feature_type: str | None = None, entity_id: str | None = None
    ) -> list[ApiAgent]:
        ft = _feature_type(feature_type)
        if ft is not None and entity_id:
            agents = _unwrap(orch.registry.find_by_scope(ft, entity_id))
        else:
            agents = _unwrap(orch.registry.list_all())
            if ft is not None:
                agents = [a for a in agents if a.scope.feature_type == ft]
        return [_to_api_agent(a) for a in agents]

    @app.get("/api/agents/{agent_id}", response_model=ApiAgent)
    def get_agent(agent_id: str) -> ApiAgent:
        return _to_api_agent(_unwrap(orch.registry.get(agent_id)))

    @app.delete("/api/agents/{agent_id}", response_model=ApiAgent)
    def delete_agent(agent_id: str) -> ApiAgent:
        return _to_api_agent(_unwrap(orch.registry.delete(agent_id)))

    @app.post("/api/agents/{agent_id}/enable", response_model=ApiAgent)
    def enable_agent(agent_id: str) -> ApiAgent:
        return _to_api_agent(_unwrap(orch.registry.enable(agent_id)))

    @app.post("/api/agents/{agent_id}/disable", response_model=ApiAgent)
    def disable_agent(agent_id: str) -> ApiAgent:
        return _to_api_agent(_unwrap(orch.registry.disable(agent_id)))

    @app.post("/api/agents/discover", response_model=list[ApiAgentMatch])
    def discover_agents(req: DiscoverRequest) -> list[ApiAgentMatch]:
        matches = _unwrap(
            orch.discovery.discover(
                required_capabilities=req.required_capabilities,
                optional_capabilities=req.optional_capabilities,
                feature_type=_feature_type(req.feature_type),
                entity_id=req.entity_id,
                node_id=req.node_id,
                minimum_score=req.minimum_score,
                max_results=req.max_results,
                strict_mode=req.strict_mode,
            )
        )
        return [_to_api_match(m) for m in matches]

    @app.post("/api/agents/search", response_model=ApiSearchResponse)
    def search_agents(req: SearchRequest) -> ApiSearchResponse:
        response = _unwrap(
            orch.semantic_search.search(
                req.query,
                feature_type=_feature_type(req.feature_type),
                entity_id=req.entity_id,
                max_results=req.max_results,
                min_semantic_score=req.min_semantic_score,
                include_explanations=req.include_explanations,
                domain_focus=req.domain_focus,
                contextual_understanding=req.contextual_understanding,
            )
        )
        return ApiSearchResponse(
            matches=[
                ApiSemanticMatch(
                    agent_id=m.agent.agent_id,
                    name=m.agent.name,
                    score=m.score,
                    matching_keywords=list(m.matching_keywords),
                    explanation=m.explanation,
                    contextual_matches=list(m.contextual_matches)
                    if m.contextual_matches is not None
                    else None,
                )
                for m in response.matches
            ],
            total_candidates=response.total_candidates,
            keywords=list(response.analysis.keywords),
            concepts=list(response.analysis.concepts),
            query_complexity=response.analysis.complexity,
            detected_domain=response.analysis.domain,
        )

    # --- execution ---------------------------------------------------------

    @app.post("/api/agents/{agent_id}/execute", response_model=ApiExecution)
    async def execute_task(agent_id: str, req: ExecuteTaskRequest) -> ApiExecution:
        result = _unwrap(
            await orch.coordinator.execute_task(
                agent_id,
                req.task,
                context=req.context,
                priority=req.priority,
                timeout_ms=req.timeout_ms,
                required_capabilities=req.required_capabilities,
            )
        )
        return _to_api_execution(result)

    @app.get("/api/executions/{execution_id}", response_model=ApiExecution)
    def get_execution(execution_id: str) -> ApiExecution:
        return _to_api_execution(_unwrap(orch.coordinator.get_execution_result(execution_id)))

    @app.get("/api/agents/{agent_id}/metrics", response_model=ApiMetrics)
    def get_metrics(agent_id: str) -> ApiMetrics:
        metrics = _unwrap(orch.coordinator.get_agent_metrics(agent_id))
        return ApiMetrics(
            agent_id=agent_id,
            execution_count=metrics.execution_count,
            success_count=metrics.success_count,
            failure_count=metrics.failure_count,
            timeout_count=metrics.timeout_count,
            success_rate=metrics.success_rate,
            average_execution_time_ms=metrics.average_execution_time_ms,
            last_execution_at=metrics.last_execution_at,
        )

    @app.post("/api/workflows/coordinate", response_model=ApiWorkflowReport)
    async def coordinate_workflow(req: CoordinateWorkflowRequest) -> ApiWorkflowReport:
        try:
            plan = WorkflowExecutionPlan(
                workflow_id=req.workflow_id or uuid.uuid4().hex,
                execution_mode=ExecutionMode(req.execution_mode),
                tasks=[WorkflowTask.model_validate(t.model_dump()) for t in req.tasks],
                sync_points=[
                    SynchronizationPoint.model_validate(p.model_dump()) for p in req.sync_points
                ],
            )
        except ValidationError as e:
            raise _invalid(e) from e
        report = _unwrap(await orch.workflows.coordinate(plan))
        return _to_api_report(report)

    logger.info("REST app created", extra={"cors_origins": settings.parsed_cors_origins()})
    return app
