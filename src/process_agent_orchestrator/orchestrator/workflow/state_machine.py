"""Explicit lifecycle of a workflow stage.

Stages move Pending -> Running -> Completed | Failed. Any other move is a
programming error and fails loudly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class StageState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[StageState, set[StageState]] = {
    StageState.PENDING: {StageState.RUNNING},
    StageState.RUNNING: {StageState.COMPLETED, StageState.FAILED},
    StageState.COMPLETED: set(),
    StageState.FAILED: set(),
}


class IllegalTransitionError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class StageSnapshot:
    stage: int
    state: StageState = StageState.PENDING

    def to_json(self) -> dict[str, object]:
        return {"stage": self.stage, "state": self.state.value}


def transition(*, current: StageSnapshot, to: StageState) -> StageSnapshot:
    allowed = ALLOWED_TRANSITIONS.get(current.state, set())
    if to not in allowed:
        raise IllegalTransitionError(
            f"Illegal transition for stage {current.stage}: {current.state.value} -> {to.value}"
        )
    return StageSnapshot(stage=current.stage, state=to)
