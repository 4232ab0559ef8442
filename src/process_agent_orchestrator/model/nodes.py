"""Container and action node variants of a workflow model.

Both families are tagged unions discriminated by ``kind``. Each variant
validates its own payload at construction time, so an invalid node never
exists in memory.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    model_validator,
)

from process_agent_orchestrator.core.errors import ConflictError, DomainValidationError
from process_agent_orchestrator.model.values import (
    ActionStatus,
    ExecutionMode,
    NodeStatus,
    Position,
    Raci,
    RetryPolicy,
)

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

MAX_STAGE_GOALS = 10
MAX_KB_SHORT_DESCRIPTION = 500
MAX_KB_DOCUMENTATION_CONTEXT = 2000


class _ContainerBase(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True, protected_namespaces=())

    node_id: NonEmptyStr
    model_id: NonEmptyStr
    name: NonEmptyStr
    description: str = ""
    position: Position = Field(default_factory=Position)
    dependencies: set[str] = Field(default_factory=set)
    status: NodeStatus = NodeStatus.DRAFT
    visual: dict[str, Any] = Field(default_factory=dict)


class BoundaryNode(_ContainerBase):
    """Input or output boundary of a process."""

    kind: Literal["boundary"] = "boundary"
    boundary_type: Literal["input", "output"]
    data_contract: dict[str, Any] = Field(default_factory=dict)


class StageNode(_ContainerBase):
    """A process phase. The only container that holds action nodes."""

    kind: Literal["stage"] = "stage"
    stage_type: str = "process"
    goals: list[str] = Field(default_factory=list, max_length=MAX_STAGE_GOALS)
    max_actions: int | None = Field(default=None, ge=1)
    parallel_execution: bool = False

    def check_admission(self, action: ActionNode, siblings: Iterable[ActionNode]) -> None:
        """Raise if ``action`` cannot join this stage alongside ``siblings``."""
        existing = [a for a in siblings if a.action_id != action.action_id]
        if self.max_actions is not None and len(existing) >= self.max_actions:
            raise ConflictError(
                f"Stage '{self.name}' is at capacity ({self.max_actions} actions)"
            )
        for other in existing:
            if other.execution_order == action.execution_order:
                raise ConflictError(
                    f"Execution order {action.execution_order} is already used by "
                    f"action '{other.name}' in stage '{self.name}'"
                )


class NestedModelWrapperNode(_ContainerBase):
    kind: Literal["nested_model"] = "nested_model"
    nested_model_id: NonEmptyStr


ContainerNode = Annotated[
    BoundaryNode | StageNode | NestedModelWrapperNode,
    Field(discriminator="kind"),
]


class _ActionBase(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True, protected_namespaces=())

    action_id: NonEmptyStr
    parent_node_id: NonEmptyStr
    model_id: NonEmptyStr
    name: NonEmptyStr
    description: str = ""
    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    execution_order: int = Field(default=1, ge=1)
    priority: int = Field(default=5, ge=1, le=10)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    raci: Raci = Field(default_factory=Raci)
    status: ActionStatus = ActionStatus.DRAFT


class ExternalCallAction(_ActionBase):
    """Invokes an external integration referenced by id."""

    kind: Literal["tether"] = "tether"
    tether_reference_id: NonEmptyStr
    configuration: dict[str, Any] = Field(default_factory=dict)


class KnowledgeAccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    view: tuple[str, ...] = ()
    edit: tuple[str, ...] = ()


class KnowledgeLookupAction(_ActionBase):
    kind: Literal["kb"] = "kb"
    kb_reference_id: NonEmptyStr
    short_description: Annotated[
        str,
        StringConstraints(
            strip_whitespace=True, min_length=1, max_length=MAX_KB_SHORT_DESCRIPTION
        ),
    ]
    documentation_context: str = Field(default="", max_length=MAX_KB_DOCUMENTATION_CONTEXT)
    access: KnowledgeAccess = Field(default_factory=KnowledgeAccess)

    @model_validator(mode="after")
    def _editors_can_view(self) -> KnowledgeLookupAction:
        missing = sorted(set(self.access.edit) - set(self.access.view))
        if missing:
            raise ValueError(
                "principals with edit permission must also have view permission: "
                + ", ".join(missing)
            )
        return self


class NestedModelInvocationAction(_ActionBase):
    kind: Literal["nested_invocation"] = "nested_invocation"
    nested_model_id: NonEmptyStr
    input_mapping: dict[str, str] = Field(default_factory=dict)


ActionNode = Annotated[
    ExternalCallAction | KnowledgeLookupAction | NestedModelInvocationAction,
    Field(discriminator="kind"),
]

container_node_adapter: TypeAdapter[ContainerNode] = TypeAdapter(ContainerNode)
action_node_adapter: TypeAdapter[ActionNode] = TypeAdapter(ActionNode)


def holds_actions(node: ContainerNode) -> bool:
    match node:
        case StageNode():
            return True
        case BoundaryNode() | NestedModelWrapperNode():
            return False
        case _:
            raise DomainValidationError(f"Unknown container node type: {type(node).__name__}")


def referenced_model_id(node: ContainerNode | ActionNode) -> str | None:
    """The nested model a node points at, if any."""
    match node:
        case NestedModelWrapperNode(nested_model_id=target):
            return target
        case NestedModelInvocationAction(nested_model_id=target):
            return target
        case _:
            return None
