from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from .errors import InvalidTransitionError


class FlowState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    AWAITING_INPUT = "awaiting_input"
    SUBMITTING = "submitting"
    AWAITING_REDIRECT_RETURN = "awaiting_redirect_return"
    RUNNING_PASSKEY_CEREMONY = "running_passkey_ceremony"
    COMPLETE = "complete"
    ERROR = "error"


class FlowEvent(str, Enum):
    INITIALIZE_REQUESTED = "flow.initialize_requested"
    STEP_RECEIVED = "flow.step_received"
    SUBMIT_REQUESTED = "flow.submit_requested"
    REDIRECT_STARTED = "redirect.started"
    CALLBACK_RECEIVED = "redirect.callback_received"
    PASSKEY_STARTED = "passkey.started"
    PASSKEY_FINISHED = "passkey.finished"
    FLOW_COMPLETED = "flow.completed"
    FLOW_FAILED = "flow.failed"
    RESET = "flow.reset"


BUSY_STATES = {FlowState.INITIALIZING, FlowState.SUBMITTING, FlowState.RUNNING_PASSKEY_CEREMONY}


@dataclass(frozen=True)
class Transition:
    source: FlowState
    event: FlowEvent
    target: FlowState


_RESPONSE_TARGETS = (
    (FlowEvent.STEP_RECEIVED, FlowState.AWAITING_INPUT),
    (FlowEvent.REDIRECT_STARTED, FlowState.AWAITING_REDIRECT_RETURN),
    (FlowEvent.PASSKEY_STARTED, FlowState.RUNNING_PASSKEY_CEREMONY),
    (FlowEvent.FLOW_COMPLETED, FlowState.COMPLETE),
)


def _build_transitions() -> tuple[Transition, ...]:
    rows = [
        Transition(FlowState.UNINITIALIZED, FlowEvent.INITIALIZE_REQUESTED, FlowState.INITIALIZING),
        Transition(FlowState.AWAITING_INPUT, FlowEvent.INITIALIZE_REQUESTED, FlowState.INITIALIZING),
        Transition(
            FlowState.AWAITING_REDIRECT_RETURN,
            FlowEvent.INITIALIZE_REQUESTED,
            FlowState.INITIALIZING,
        ),
        Transition(FlowState.COMPLETE, FlowEvent.INITIALIZE_REQUESTED, FlowState.INITIALIZING),
        Transition(FlowState.ERROR, FlowEvent.INITIALIZE_REQUESTED, FlowState.INITIALIZING),
        Transition(FlowState.AWAITING_INPUT, FlowEvent.SUBMIT_REQUESTED, FlowState.SUBMITTING),
        # A persisted flow resumed by a fresh engine accepts a step directly.
        Transition(FlowState.UNINITIALIZED, FlowEvent.SUBMIT_REQUESTED, FlowState.SUBMITTING),
        Transition(FlowState.UNINITIALIZED, FlowEvent.CALLBACK_RECEIVED, FlowState.SUBMITTING),
        Transition(FlowState.AWAITING_INPUT, FlowEvent.CALLBACK_RECEIVED, FlowState.SUBMITTING),
        Transition(
            FlowState.AWAITING_REDIRECT_RETURN,
            FlowEvent.CALLBACK_RECEIVED,
            FlowState.SUBMITTING,
        ),
        Transition(
            FlowState.RUNNING_PASSKEY_CEREMONY,
            FlowEvent.PASSKEY_FINISHED,
            FlowState.SUBMITTING,
        ),
    ]
    for source in (FlowState.INITIALIZING, FlowState.SUBMITTING):
        for event, target in _RESPONSE_TARGETS:
            rows.append(Transition(source, event, target))
    for source in FlowState:
        if source is not FlowState.ERROR:
            rows.append(Transition(source, FlowEvent.FLOW_FAILED, FlowState.ERROR))
        rows.append(Transition(source, FlowEvent.RESET, FlowState.UNINITIALIZED))
    return tuple(rows)


TRANSITIONS: tuple[Transition, ...] = _build_transitions()


def build_transition_index() -> Dict[tuple[FlowState, FlowEvent], Transition]:
    return {(row.source, row.event): row for row in TRANSITIONS}


_INDEX = build_transition_index()


def can_transition(state: FlowState, event: FlowEvent) -> bool:
    return (state, event) in _INDEX


def next_state(state: FlowState, event: FlowEvent) -> FlowState:
    row = _INDEX.get((state, event))
    if row is None:
        raise InvalidTransitionError(state.value, event.value)
    return row.target
