import urllib.parse

import httpx
from starlette.testclient import TestClient

from auth.routes import SESSION_COOKIE
from auth.storage import MemoryKeyValueStore
from signin.app import create_app
from tests.flow_helpers import FlowServer, complete_step, redirect_step, view_step


def _build_client(flow_config, server: FlowServer, store: MemoryKeyValueStore | None = None):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
    app = create_app(flow_config, store=store or MemoryKeyValueStore(), http_client=http_client)
    return TestClient(app)


def test_health(flow_config) -> None:
    client = _build_client(flow_config, FlowServer())

    payload = client.get("/health").json()

    assert payload == {"status": "ok", "version": "0.1.0"}


def test_page_load_returns_snapshot_and_session_cookie(flow_config) -> None:
    client = _build_client(flow_config, FlowServer(view_step()))

    response = client.get("/signin")

    assert response.status_code == 200
    assert SESSION_COOKIE in response.cookies
    payload = response.json()
    assert payload["state"] == "awaiting_input"
    assert payload["flowId"] == "flow-1"
    assert payload["isInitialized"] is True
    assert payload["error"] is None
    assert payload["components"][0]["ref"] == "username"
    assert payload["location"] == "http://testserver/signin"


def test_submit_uses_flow_from_session(flow_config) -> None:
    server = FlowServer(view_step(), complete_step())
    client = _build_client(flow_config, server)
    client.get("/signin")

    response = client.post(
        "/signin",
        json={"inputs": {"username": "alice", "password": "pw"}, "action": "submit"},
    )

    assert response.status_code == 200
    assert response.json()["navigateTo"] == "https://app.example/done"
    assert response.json()["state"] == "complete"
    assert server.requests[-1]["flowId"] == "flow-1"


def test_submit_without_session_flow_rejected(flow_config) -> None:
    client = _build_client(flow_config, FlowServer())

    response = client.post("/signin", json={"inputs": {"username": "alice"}})

    assert response.status_code == 400
    assert response.json()["error"] == "missing_flow"


def test_submit_rejects_non_json(flow_config) -> None:
    client = _build_client(flow_config, FlowServer())

    response = client.post(
        "/signin", content=b"not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"
    assert response.json()["message"] == "Body must be JSON."


def test_sessions_do_not_share_flows(flow_config) -> None:
    server = FlowServer(view_step())
    store = MemoryKeyValueStore()
    first = _build_client(flow_config, server, store)
    first.get("/signin")
    second = _build_client(flow_config, server, store)

    response = second.post("/signin", json={"inputs": {"username": "mallory"}})

    assert response.status_code == 400


def test_federated_round_trip(flow_config) -> None:
    server = FlowServer(redirect_step(), complete_step(redirect_url=None))
    client = _build_client(flow_config, server)

    to_idp = client.get("/signin", follow_redirects=False)
    assert to_idp.status_code == 302
    idp_url = to_idp.headers["location"]
    assert idp_url.startswith("https://idp.example/authorize?x=1&state=")
    state = urllib.parse.parse_qs(urllib.parse.urlparse(idp_url).query)["state"][0]

    back = client.get(f"/callback?code=abc&state={state}", follow_redirects=False)
    assert back.status_code == 302
    assert back.headers["location"] == "/signin?code=abc"

    done = client.get(back.headers["location"], follow_redirects=False)
    assert done.status_code == 302
    assert done.headers["location"] == "https://app.example/home"
    assert server.requests[-1] == {"flowId": "flow-1", "verbose": True, "inputs": {"code": "abc"}}


def test_reloading_callback_page_submits_code_once(flow_config) -> None:
    server = FlowServer(redirect_step(), view_step(components=[]))
    client = _build_client(flow_config, server)
    to_idp = client.get("/signin", follow_redirects=False)
    state = urllib.parse.parse_qs(urllib.parse.urlparse(to_idp.headers["location"]).query)["state"][0]
    back = client.get(f"/callback?code=abc&state={state}", follow_redirects=False)

    first = client.get(back.headers["location"])
    reloaded = client.get(back.headers["location"])

    codes = [body["inputs"]["code"] for body in server.submissions]
    assert codes == ["abc"]
    assert first.json()["state"] == "awaiting_input"
    assert first.json()["location"] == "http://testserver/signin"
    assert reloaded.status_code == 200
    assert reloaded.json()["location"] == "http://testserver/signin"


def test_callback_with_forged_state_is_rejected(flow_config) -> None:
    server = FlowServer()
    client = _build_client(flow_config, server)

    response = client.get("/callback?code=abc&state=forged", follow_redirects=False)

    location = response.headers["location"]
    assert response.status_code == 302
    assert location.startswith("/?")
    assert urllib.parse.parse_qs(urllib.parse.urlparse(location).query)["error"] == ["callback_error"]
    assert server.requests == []


def test_provider_error_surfaces_in_snapshot(flow_config) -> None:
    server = FlowServer()
    client = _build_client(flow_config, server)

    payload = client.get("/signin?error=access_denied").json()

    assert payload["state"] == "error"
    assert payload["error"]["code"] == "oauth_provider_error"
    assert "access_denied" in payload["error"]["message"]
    assert server.requests == []


def test_cors_allows_configured_origin(flow_config) -> None:
    client = _build_client(flow_config, FlowServer())

    response = client.get("/health")
    assert "access-control-allow-origin" not in response.headers

    response = client.options(
        "/signin",
        headers={"Origin": "https://app.example", "Access-Control-Request-Method": "POST"},
    )

    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == "https://app.example"
    assert response.headers["access-control-allow-credentials"] == "true"
    assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
    assert response.headers["access-control-max-age"] == "600"


def test_cors_blocks_unknown_origin(flow_config) -> None:
    client = _build_client(flow_config, FlowServer(view_step()))

    response = client.get("/signin", headers={"Origin": "https://unknown.example"})

    assert "access-control-allow-origin" not in response.headers


def test_routes_honor_base_path(flow_config) -> None:
    flow_config.base_path = "/auth"
    client = _build_client(flow_config, FlowServer(redirect_step()))

    to_idp = client.get("/auth/signin", follow_redirects=False)
    state = urllib.parse.parse_qs(urllib.parse.urlparse(to_idp.headers["location"]).query)["state"][0]
    back = client.get(f"/auth/callback?code=abc&state={state}", follow_redirects=False)

    assert back.headers["location"] == "/auth/signin?code=abc"
