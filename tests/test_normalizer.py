import pytest

from signin.errors import InvalidFlowResponseError
from signin.models import FlowStatus, FlowType
from signin.normalizer import normalize_flow_response, resolve_placeholders
from tests.flow_helpers import passkey_step, redirect_step, view_step

TEXTS = {"signin.username": "Username", "signin.title": "Welcome"}


def test_view_step_components_parsed() -> None:
    response = normalize_flow_response(view_step())

    assert response.flow_id == "flow-1"
    assert response.flow_status is FlowStatus.INCOMPLETE
    assert response.type is FlowType.VIEW
    assert [component.type for component in response.components] == [
        "TEXT_INPUT",
        "PASSWORD_INPUT",
        "ACTION",
    ]
    assert response.components[0].required is True


def test_placeholders_resolved_with_mapping() -> None:
    response = normalize_flow_response(view_step(), resolver=TEXTS)

    assert response.components[0].attributes["label"] == "Username"


def test_placeholders_kept_when_resolution_disabled() -> None:
    response = normalize_flow_response(view_step(), resolver=TEXTS, resolve=False)

    assert response.components[0].attributes["label"] == "{{ t(signin.username) }}"


def test_resolve_placeholders_with_callable_and_unknown_key() -> None:
    text = resolve_placeholders("{{ signin.title }} {{ t(missing) }}", TEXTS.get)

    assert text == "Welcome {{ t(missing) }}"


def test_nested_components_resolved() -> None:
    raw = view_step(
        components=[
            {
                "id": "block",
                "type": "BLOCK",
                "components": [{"id": "title", "type": "TEXT", "label": "{{ signin.title }}"}],
            }
        ]
    )

    response = normalize_flow_response(raw, resolver=TEXTS)

    block = response.components[0]
    assert block.components[0].id == "title"
    assert block.components[0].attributes["label"] == "Welcome"


def test_legacy_inputs_and_actions_become_components() -> None:
    raw = {
        "flowId": "flow-1",
        "flowStatus": "INCOMPLETE",
        "type": "VIEW",
        "data": {
            "inputs": [
                {"identifier": "username", "type": "string", "required": True},
                {"identifier": "password", "type": "password", "required": True},
            ],
            "actions": [{"ref": "basic_auth", "type": "PRIMARY"}],
        },
    }

    response = normalize_flow_response(raw)

    assert [(item.ref, item.type) for item in response.components] == [
        ("username", "TEXT_INPUT"),
        ("password", "PASSWORD_INPUT"),
        ("basic_auth", "ACTION"),
    ]


def test_redirection_url_extracted() -> None:
    response = normalize_flow_response(redirect_step())

    assert response.type is FlowType.REDIRECTION
    assert response.redirect_url == "https://idp.example/authorize?x=1"


def test_completion_url_falls_back_to_redirect_uri() -> None:
    response = normalize_flow_response(
        {"flowStatus": "COMPLETE", "redirect_uri": "https://app.example/cb"}
    )

    assert response.is_terminal
    assert response.completion_url == "https://app.example/cb"
    assert response.flow_id is None


def test_failure_reason_extracted() -> None:
    response = normalize_flow_response({"flowStatus": "ERROR", "failureReason": "Locked"})

    assert response.flow_status is FlowStatus.ERROR
    assert response.failure_reason == "Locked"


def test_passkey_challenge_exposed() -> None:
    response = normalize_flow_response(passkey_step())

    assert response.passkey_challenge["challenge"] == "Y2hhbGxlbmdl"
    assert response.passkey_creation_options is None


def test_missing_status_rejected() -> None:
    with pytest.raises(InvalidFlowResponseError, match="flowStatus"):
        normalize_flow_response({"flowId": "flow-1"})


def test_unknown_type_rejected() -> None:
    with pytest.raises(InvalidFlowResponseError, match="Unknown type"):
        normalize_flow_response({"flowStatus": "INCOMPLETE", "type": "TELEPORT"})


def test_non_list_components_rejected() -> None:
    with pytest.raises(InvalidFlowResponseError):
        normalize_flow_response({"flowStatus": "INCOMPLETE", "data": {"components": {}}})
