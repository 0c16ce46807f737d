from __future__ import annotations

import dataclasses
import json
import secrets
from typing import Any, Callable

from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from auth.callback import CallbackLanding
from auth.cors import flow_error_response, preflight_response, with_cors_headers
from auth.csrf import CsrfStateStore
from auth.storage import KeyValueStore
from signin.constants import APP_VERSION, LOGGER
from signin.errors import FlowError
from signin.location import Navigator
from signin.models import FlowSnapshot
from signin.orchestrator import SignInFlow

SESSION_COOKIE = "signin_session"

FlowFactory = Callable[[Navigator, str], SignInFlow]


class RequestNavigator(Navigator):
    """Location of one HTTP request; a navigation becomes the response redirect."""

    def __init__(self, url: str, *, base_path: str = "") -> None:
        self._url = url
        self.base_path = base_path
        self.target: str | None = None

    def current_url(self) -> str:
        return self._url

    def replace_url(self, url: str) -> None:
        self._url = url

    def navigate(self, url: str) -> None:
        self.target = url


def snapshot_payload(snapshot: FlowSnapshot) -> dict[str, Any]:
    error = None
    if snapshot.error is not None:
        error = {
            "code": getattr(snapshot.error, "code", "flow_error"),
            "message": str(snapshot.error),
        }
    return {
        "state": snapshot.state,
        "flowId": snapshot.flow_id,
        "components": [dataclasses.asdict(component) for component in snapshot.components],
        "error": error,
        "isLoading": snapshot.is_loading,
        "isInitialized": snapshot.is_initialized,
    }


class SignInRoutes:
    def __init__(
        self,
        *,
        flow_factory: FlowFactory,
        store: KeyValueStore,
        storage_namespace: str,
        base_path: str = "",
        cors_origins: set[str] | None = None,
    ) -> None:
        self._flow_factory = flow_factory
        self._store = store
        self._storage_namespace = storage_namespace
        self.base_path = base_path.rstrip("/")
        self.cors_origins = cors_origins or set()

    def routes(self) -> list[Route]:
        base = self.base_path
        return [
            Route(f"{base}/health", self._handle_health, methods=["GET"]),
            Route(f"{base}/signin", self._handle_page_load, methods=["GET"]),
            Route(f"{base}/signin", self._handle_submit, methods=["POST"]),
            Route(f"{base}/callback", self._handle_callback, methods=["GET"]),
            Route(f"{base}/signin", self._handle_preflight, methods=["OPTIONS"]),
            Route(f"{base}/callback", self._handle_preflight, methods=["OPTIONS"]),
        ]

    def _session_id(self, request: Request) -> tuple[str, bool]:
        session_id = request.cookies.get(SESSION_COOKIE)
        if session_id:
            return session_id, False
        return secrets.token_urlsafe(16), True

    def _namespace(self, session_id: str) -> str:
        return f"{self._storage_namespace}:{session_id}"

    def _finish(self, request: Request, response: Response, session_id: str, is_new: bool) -> Response:
        if is_new:
            response.set_cookie(
                SESSION_COOKIE,
                session_id,
                httponly=True,
                samesite="lax",
                secure=request.url.scheme == "https",
            )
        return with_cors_headers(request, response, self.cors_origins)

    async def _handle_health(self, request: Request) -> Response:
        del request
        return JSONResponse({"status": "ok", "version": APP_VERSION})

    async def _handle_preflight(self, request: Request) -> Response:
        return preflight_response(request, self.cors_origins)

    async def _handle_page_load(self, request: Request) -> Response:
        session_id, is_new = self._session_id(request)
        navigator = RequestNavigator(str(request.url), base_path=self.base_path)
        flow = self._flow_factory(navigator, self._namespace(session_id))

        await flow.start()

        if navigator.target:
            response: Response = RedirectResponse(url=navigator.target, status_code=302)
        else:
            payload = snapshot_payload(flow.snapshot())
            payload["location"] = navigator.current_url()
            response = JSONResponse(payload)
        return self._finish(request, response, session_id, is_new)

    async def _handle_submit(self, request: Request) -> Response:
        session_id, is_new = self._session_id(request)
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return flow_error_response(
                request, self.cors_origins, "invalid_request", "Body must be JSON.", 400
            )
        if not isinstance(body, dict):
            return flow_error_response(
                request, self.cors_origins, "invalid_request", "Body must be a JSON object.", 400
            )

        navigator = RequestNavigator(str(request.url), base_path=self.base_path)
        flow = self._flow_factory(navigator, self._namespace(session_id))
        try:
            await flow.submit(body)
        except FlowError as error:
            LOGGER.warning("Rejected step submission code=%s: %s", error.code, error)
            return flow_error_response(request, self.cors_origins, error.code, str(error), 400)
        except ValueError as error:
            return flow_error_response(
                request, self.cors_origins, "invalid_request", str(error), 400
            )

        payload = snapshot_payload(flow.snapshot())
        payload["navigateTo"] = navigator.target
        return self._finish(request, JSONResponse(payload), session_id, is_new)

    async def _handle_callback(self, request: Request) -> Response:
        session_id, is_new = self._session_id(request)
        csrf_store = CsrfStateStore(self._store, namespace=self._namespace(session_id))
        landing = CallbackLanding(csrf_store, base_path=self.base_path)

        result = await landing.forward(str(request.url))
        response = RedirectResponse(url=result.target, status_code=302)
        return self._finish(request, response, session_id, is_new)
