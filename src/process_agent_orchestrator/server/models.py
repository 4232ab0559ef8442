"""Pydantic models for the REST server.

Request and response bodies are flat field bags; nothing in the domain model
is exposed directly.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _Api(BaseModel):
    model_config = ConfigDict(protected_namespaces=())


class CreateModelRequest(_Api):
    name: str
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class ApiModel(_Api):
    model_id: str
    name: str
    description: str
    version: str
    status: str
    current_version: str | None = None
    node_count: int
    action_count: int
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None


class ApiValidation(_Api):
    is_valid: bool
    errors: list[str]
    warnings: list[str]


class CreateNodeRequest(_Api):
    kind: Literal["boundary", "stage", "nested_model"]
    node_id: str | None = None
    name: str
    description: str = ""
    position_x: float = 0.0
    position_y: float = 0.0

    boundary_type: str | None = None
    stage_type: str | None = None
    goals: list[str] = Field(default_factory=list)
    max_actions: int | None = None
    parallel_execution: bool = False
    nested_model_id: str | None = None


class ApiNode(_Api):
    node_id: str
    model_id: str
    kind: str
    name: str
    description: str
    dependencies: list[str]
    status: str


class CreateActionRequest(_Api):
    kind: Literal["tether", "kb", "nested_invocation"]
    action_id: str | None = None
    parent_node_id: str
    name: str
    description: str = ""
    execution_mode: Literal["sequential", "parallel"] = "sequential"
    execution_order: int = 1
    priority: int = 5

    retry_max_attempts: int = 3
    retry_backoff_ms: int = 1000
    raci_responsible: str = ""
    raci_accountable: str = ""

    tether_reference_id: str | None = None
    kb_reference_id: str | None = None
    short_description: str | None = None
    documentation_context: str = ""
    view_principals: list[str] = Field(default_factory=list)
    edit_principals: list[str] = Field(default_factory=list)
    nested_model_id: str | None = None


class ApiAction(_Api):
    action_id: str
    parent_node_id: str
    model_id: str
    kind: str
    name: str
    execution_order: int
    priority: int
    status: str


class CreateEdgeRequest(_Api):
    source_node_id: str
    target_node_id: str
    source_handle: str = "right"
    target_handle: str = "left"


class ApiEdge(_Api):
    connection_id: str
    model_id: str
    source_node_id: str
    target_node_id: str
    source_handle: str
    target_handle: str
    connection_type: str


class PublishRequest(_Api):
    version: str
    user_id: str


class DeleteModelRequest(_Api):
    user_id: str


class RegisterAgentRequest(_Api):
    agent_id: str | None = None
    feature_type: str
    entity_id: str
    node_id: str | None = None
    name: str
    description: str = ""
    instructions: str
    available_tools: list[str] = Field(default_factory=list)
    tool_configurations: dict[str, dict[str, Any]] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)

    can_read: bool = True
    can_write: bool = False
    can_execute: bool = False
    can_analyze: bool = False
    can_orchestrate: bool = False
    max_concurrent_tasks: int = 5
    timeout_ms: int = 30_000
    supported_data_types: list[str] = Field(default_factory=lambda: ["json"])
    skills: list[str] = Field(default_factory=list)
    domains: list[str] = Field(default_factory=list)
    processing_modes: list[str] = Field(default_factory=list)


class ApiAgent(_Api):
    agent_id: str
    feature_type: str
    entity_id: str
    node_id: str | None = None
    name: str
    description: str
    enabled: bool
    available_tools: list[str]
    capabilities: list[str]
    max_concurrent_tasks: int
    execution_count: int
    success_rate: float


class DiscoverRequest(_Api):
    required_capabilities: list[str]
    optional_capabilities: list[str] = Field(default_factory=list)
    feature_type: str | None = None
    entity_id: str | None = None
    node_id: str | None = None
    minimum_score: float = 0.0
    max_results: int = 10
    strict_mode: bool = False


class ApiAgentMatch(_Api):
    agent_id: str
    name: str
    score: float
    matching_capabilities: list[str]
    missing_capabilities: list[str]
    missing_optional: list[str]
    current_load: int


class SearchRequest(_Api):
    query: str
    feature_type: str | None = None
    entity_id: str | None = None
    max_results: int = 10
    min_semantic_score: float = 0.0
    include_explanations: bool = False
    domain_focus: str | None = None
    contextual_understanding: bool = False


class ApiSemanticMatch(_Api):
    agent_id: str
    name: str
    score: float
    matching_keywords: list[str]
    explanation: str | None = None
    contextual_matches: list[str] | None = None


class ApiSearchResponse(_Api):
    matches: list[ApiSemanticMatch]
    total_candidates: int
    keywords: list[str]
    concepts: list[str]
    query_complexity: str
    detected_domain: str


class ExecuteTaskRequest(_Api):
    task: str
    context: dict[str, Any] = Field(default_factory=dict)
    priority: int = 5
    timeout_ms: int | None = None
    required_capabilities: list[str] = Field(default_factory=list)


class ApiExecution(_Api):
    execution_id: str
    agent_id: str
    status: str
    success: bool
    output: Any = None
    error: str | None = None
    execution_time_ms: int
    queued: bool
    capabilities_used: list[str] = Field(default_factory=list)
    context_accessed: list[str] = Field(default_factory=list)


class ApiMetrics(_Api):
    agent_id: str
    execution_count: int
    success_count: int
    failure_count: int
    timeout_count: int
    success_rate: float
    average_execution_time_ms: float
    last_execution_at: datetime | None = None


class CoordinateTaskRequest(_Api):
    stage: int
    description: str
    agent_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    priority: int = 5
    timeout_ms: int | None = None
    required_capabilities: list[str] = Field(default_factory=list)


class CoordinateSyncRequest(_Api):
    after_stage: int
    action: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class CoordinateWorkflowRequest(_Api):
    workflow_id: str | None = None
    execution_mode: Literal["sequential", "parallel"] = "sequential"
    tasks: list[CoordinateTaskRequest]
    sync_points: list[CoordinateSyncRequest] = Field(default_factory=list)


class ApiStage(_Api):
    stage: int
    state: str
    execution_ids: list[str]
    error: str | None = None
    sync_action: str | None = None
    sync_ok: bool | None = None
    sync_error: str | None = None


class ApiWorkflowReport(_Api):
    workflow_id: str
    execution_mode: str
    status: str
    stages: list[ApiStage]
    errors: list[str]
