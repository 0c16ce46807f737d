from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FlowStatus(str, Enum):
    INCOMPLETE = "INCOMPLETE"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


class FlowType(str, Enum):
    VIEW = "VIEW"
    REDIRECTION = "REDIRECTION"


@dataclass
class FlowComponent:
    id: str
    type: str
    ref: str | None = None
    required: bool = False
    components: list[FlowComponent] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class FlowResponse:
    flow_id: str | None
    flow_status: FlowStatus
    type: FlowType
    components: list[FlowComponent] = field(default_factory=list)
    redirect_url: str | None = None
    completion_url: str | None = None
    additional_data: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)
    failure_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.flow_status in (FlowStatus.COMPLETE, FlowStatus.ERROR)

    @property
    def passkey_challenge(self) -> Any:
        return self.additional_data.get("passkeyChallenge") or None

    @property
    def passkey_creation_options(self) -> Any:
        return self.additional_data.get("passkeyCreationOptions") or None


@dataclass
class FlowSession:
    flow_id: str | None = None
    auth_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.flow_id is None and self.auth_id is None


@dataclass
class StepPayload:
    inputs: dict[str, Any] = field(default_factory=dict)
    action: str | None = None
    flow_id: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "StepPayload":
        inputs = payload.get("inputs") or {}
        if not isinstance(inputs, dict):
            raise ValueError("Step inputs must be an object.")
        action = payload.get("action") or payload.get("actionId")
        flow_id = payload.get("flowId") or payload.get("flow_id")
        return cls(inputs=dict(inputs), action=action, flow_id=flow_id)


@dataclass
class PasskeyCeremonyState:
    flow_id: str
    action_id: str | None = "submit"
    challenge: Any = None
    creation_options: Any = None
    is_active: bool = True

    @property
    def is_registration(self) -> bool:
        return self.challenge is None and self.creation_options is not None

    def options(self) -> dict[str, Any]:
        raw = self.creation_options if self.is_registration else self.challenge
        if isinstance(raw, str):
            raw = json.loads(raw)
        if not isinstance(raw, dict):
            raise ValueError("Passkey options must be a JSON object.")
        return raw


class OneShotGuard:
    def __init__(self, name: str) -> None:
        self.name = name
        self._consumed = False

    @property
    def consumed(self) -> bool:
        return self._consumed

    def consume(self) -> bool:
        """Mark the guarded operation as taken; False when it already was."""
        if self._consumed:
            return False
        self._consumed = True
        return True

    def reset(self) -> None:
        self._consumed = False

    def __repr__(self) -> str:
        return f"OneShotGuard({self.name!r}, consumed={self._consumed})"


@dataclass
class FlowSnapshot:
    state: str
    flow_id: str | None
    components: list[FlowComponent]
    error: Exception | None
    is_loading: bool
    is_initialized: bool
