"""Unit tests for the stage state machine.

Illegal transitions must fail loudly.
"""

from __future__ import annotations

import pytest

from process_agent_orchestrator.orchestrator.workflow.state_machine import (
    IllegalTransitionError,
    StageSnapshot,
    StageState,
    transition,
)


def test_stage_happy_path() -> None:
    snap = StageSnapshot(stage=2)
    running = transition(current=snap, to=StageState.RUNNING)
    done = transition(current=running, to=StageState.COMPLETED)

    assert done.stage == 2
    assert done.to_json() == {"stage": 2, "state": "completed"}


@pytest.mark.parametrize(
    ("start", "target"),
    [
        (StageState.PENDING, StageState.COMPLETED),
        (StageState.PENDING, StageState.FAILED),
        (StageState.COMPLETED, StageState.RUNNING),
        (StageState.FAILED, StageState.COMPLETED),
    ],
)
def test_transition_rejects_illegal_transitions(start: StageState, target: StageState) -> None:
    with pytest.raises(IllegalTransitionError):
        transition(current=StageSnapshot(stage=1, state=start), to=target)
