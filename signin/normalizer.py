from __future__ import annotations

import re
from typing import Any, Callable, Mapping, Union

from .errors import InvalidFlowResponseError
from .models import FlowComponent, FlowResponse, FlowStatus, FlowType

TextResolver = Union[Mapping[str, str], Callable[[str], Union[str, None]]]

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(?:t\(\s*(?P<t_key>[^)]+?)\s*\)|(?P<key>[\w.:-]+))\s*\}\}")

_STRUCTURAL_KEYS = {"id", "type", "ref", "required", "components"}

_INPUT_COMPONENT_TYPES = {
    "password": "PASSWORD_INPUT",
    "email": "EMAIL_INPUT",
    "phone": "PHONE_INPUT",
    "otp": "OTP_INPUT",
    "number": "NUMBER_INPUT",
}


def _lookup(resolver: TextResolver, key: str) -> str | None:
    if callable(resolver):
        return resolver(key)
    return resolver.get(key)


def resolve_placeholders(text: str, resolver: TextResolver | None) -> str:
    if resolver is None or "{{" not in text:
        return text

    def _replace(match: re.Match) -> str:
        key = (match.group("t_key") or match.group("key") or "").strip()
        value = _lookup(resolver, key)
        return match.group(0) if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(_replace, text)


def _resolve_value(value: Any, resolver: TextResolver | None) -> Any:
    if isinstance(value, str):
        return resolve_placeholders(value, resolver)
    if isinstance(value, list):
        return [_resolve_value(item, resolver) for item in value]
    if isinstance(value, dict):
        return {key: _resolve_value(item, resolver) for key, item in value.items()}
    return value


def _parse_component(raw: Any, resolver: TextResolver | None, index: int) -> FlowComponent:
    if not isinstance(raw, dict):
        raise InvalidFlowResponseError("Flow components must be objects.")

    attributes = {key: value for key, value in raw.items() if key not in _STRUCTURAL_KEYS}
    if resolver is not None:
        attributes = _resolve_value(attributes, resolver)

    children = raw.get("components") or []
    if not isinstance(children, list):
        raise InvalidFlowResponseError("Nested flow components must be a list.")

    return FlowComponent(
        id=str(raw.get("id") or raw.get("ref") or f"component-{index}"),
        type=str(raw.get("type") or "UNKNOWN"),
        ref=raw.get("ref"),
        required=bool(raw.get("required", False)),
        components=[
            _parse_component(child, resolver, child_index)
            for child_index, child in enumerate(children)
        ],
        attributes=attributes,
    )


def _components_from_inputs(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Build component descriptors for step payloads that only list inputs and actions."""
    components: list[dict[str, Any]] = []
    for item in data.get("inputs") or []:
        if not isinstance(item, dict):
            continue
        name = item.get("identifier") or item.get("name")
        if not name:
            continue
        input_type = str(item.get("type") or "text").lower()
        components.append(
            {
                "id": name,
                "type": _INPUT_COMPONENT_TYPES.get(input_type, "TEXT_INPUT"),
                "ref": name,
                "required": bool(item.get("required", False)),
                "label": item.get("label") or name,
            }
        )
    for item in data.get("actions") or []:
        if not isinstance(item, dict):
            continue
        ref = item.get("ref") or item.get("id")
        if not ref:
            continue
        components.append(
            {
                "id": ref,
                "type": "ACTION",
                "ref": ref,
                "label": item.get("label") or ref,
                "variant": item.get("type") or "PRIMARY",
            }
        )
    return components


def _enum_value(enum_cls, raw: Any, field_name: str):
    try:
        return enum_cls(str(raw).upper())
    except ValueError:
        raise InvalidFlowResponseError(f"Unknown {field_name} in flow response: {raw!r}")


def normalize_flow_response(
    raw: dict[str, Any],
    *,
    resolver: TextResolver | None = None,
    resolve: bool = True,
) -> FlowResponse:
    if not isinstance(raw, dict):
        raise InvalidFlowResponseError("Flow response must be a JSON object.")

    data = raw.get("data") or {}
    if not isinstance(data, dict):
        raise InvalidFlowResponseError("Flow response data must be an object.")

    status_raw = raw.get("flowStatus") or raw.get("status")
    if not status_raw:
        raise InvalidFlowResponseError("Flow response is missing flowStatus.")
    flow_status = _enum_value(FlowStatus, status_raw, "flowStatus")
    flow_type = _enum_value(FlowType, raw.get("type") or data.get("type") or "VIEW", "type")

    raw_components = data.get("components")
    if raw_components is None:
        raw_components = raw.get("components")
    if raw_components is None:
        raw_components = _components_from_inputs(data)
    if not isinstance(raw_components, list):
        raise InvalidFlowResponseError("Flow components must be a list.")

    active_resolver = resolver if resolve else None
    components = [
        _parse_component(item, active_resolver, index) for index, item in enumerate(raw_components)
    ]

    additional_data = data.get("additionalData") or raw.get("additionalData") or {}
    if not isinstance(additional_data, dict):
        additional_data = {}

    failure_reason = raw.get("failureReason") or data.get("failureReason")

    return FlowResponse(
        flow_id=raw.get("flowId") or None,
        flow_status=flow_status,
        type=flow_type,
        components=components,
        redirect_url=data.get("redirectURL") or raw.get("redirectURL"),
        completion_url=raw.get("redirectUrl") or raw.get("redirect_uri"),
        additional_data=additional_data,
        data=data,
        failure_reason=failure_reason,
    )
