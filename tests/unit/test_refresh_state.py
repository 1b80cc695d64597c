import pytest

from roadrollup.common.errors import StateTransitionError
from roadrollup.pipeline.refresh import RefreshState, RefreshStateMachine


def test_happy_path_reaches_complete():
    machine = RefreshStateMachine("d1")
    for state in (
        RefreshState.CLIPPING_SEGMENTS,
        RefreshState.CLUSTERING,
        RefreshState.AGGREGATING,
        RefreshState.COMPLETE,
    ):
        machine.advance(state)
    assert machine.state is RefreshState.COMPLETE
    assert machine.terminal


@pytest.mark.parametrize(
    "steps",
    [
        (),
        (RefreshState.CLIPPING_SEGMENTS,),
        (RefreshState.CLIPPING_SEGMENTS, RefreshState.CLUSTERING),
        (RefreshState.CLIPPING_SEGMENTS, RefreshState.CLUSTERING, RefreshState.AGGREGATING),
    ],
)
def test_failed_reachable_from_every_non_terminal_state(steps):
    machine = RefreshStateMachine("d1")
    for state in steps:
        machine.advance(state)
    machine.fail()
    assert machine.state is RefreshState.FAILED


def test_illegal_transitions_raise():
    machine = RefreshStateMachine("d1")
    with pytest.raises(StateTransitionError):
        machine.advance(RefreshState.AGGREGATING)

    machine.fail()
    with pytest.raises(StateTransitionError):
        machine.advance(RefreshState.CLIPPING_SEGMENTS)


def test_fail_after_complete_is_a_no_op():
    machine = RefreshStateMachine("d1")
    for state in (RefreshState.CLIPPING_SEGMENTS, RefreshState.CLUSTERING, RefreshState.AGGREGATING, RefreshState.COMPLETE):
        machine.advance(state)
    machine.fail()
    assert machine.state is RefreshState.COMPLETE
