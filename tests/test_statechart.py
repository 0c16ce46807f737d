import pytest

from signin.errors import InvalidTransitionError
from signin.statechart import (
    TRANSITIONS,
    FlowEvent,
    FlowState,
    build_transition_index,
    can_transition,
    next_state,
)


def test_transition_index_has_unique_keys() -> None:
    assert len(build_transition_index()) == len(TRANSITIONS)


def test_happy_path_through_redirect() -> None:
    state = FlowState.UNINITIALIZED
    for event in (
        FlowEvent.INITIALIZE_REQUESTED,
        FlowEvent.REDIRECT_STARTED,
        FlowEvent.CALLBACK_RECEIVED,
        FlowEvent.FLOW_COMPLETED,
    ):
        state = next_state(state, event)

    assert state is FlowState.COMPLETE


def test_passkey_path() -> None:
    state = next_state(FlowState.SUBMITTING, FlowEvent.PASSKEY_STARTED)
    state = next_state(state, FlowEvent.PASSKEY_FINISHED)

    assert state is FlowState.SUBMITTING


def test_terminal_states_only_reinitialize_or_reset() -> None:
    for state in (FlowState.COMPLETE, FlowState.ERROR):
        allowed = {event for event in FlowEvent if can_transition(state, event)}
        assert allowed <= {
            FlowEvent.INITIALIZE_REQUESTED,
            FlowEvent.RESET,
            FlowEvent.FLOW_FAILED,
        }


def test_error_does_not_fail_again() -> None:
    assert not can_transition(FlowState.ERROR, FlowEvent.FLOW_FAILED)


def test_every_state_can_reset() -> None:
    assert all(can_transition(state, FlowEvent.RESET) for state in FlowState)


def test_submit_while_submitting_is_illegal() -> None:
    with pytest.raises(InvalidTransitionError) as caught:
        next_state(FlowState.SUBMITTING, FlowEvent.SUBMIT_REQUESTED)

    assert caught.value.state == "submitting"
    assert caught.value.event == "flow.submit_requested"
