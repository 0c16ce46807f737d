from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from auth.csrf import CsrfStateStore
from auth.models import CsrfStateRecord
from auth.session_store import FlowSessionStore
from auth.urls import join_base_path, remove_query_params, with_query
from signin.constants import DEFAULT_FAILURE_MESSAGE, LOGGER, OAUTH_QUERY_PARAMS
from signin.errors import (
    CsrfValidationError,
    FlowError,
    FlowInvalidatedError,
    MissingFlowError,
    OAuthProviderError,
)
from signin.location import LocationParams, Navigator
from signin.models import FlowResponse, FlowStatus, OneShotGuard

SubmitCode = Callable[[str, dict[str, str]], Awaitable["FlowResponse | None"]]


def resolve_callback_flow_id(
    params: LocationParams,
    *,
    current_flow_id: str | None,
    stored_flow_id: str | None,
) -> str | None:
    # The state token doubles as a flow correlator only when nothing else is known.
    return current_flow_id or stored_flow_id or params.flow_id or params.state or None


class OAuthCallbackProcessor:
    def __init__(
        self,
        *,
        session_store: FlowSessionStore,
        navigator: Navigator,
        guard: OneShotGuard,
    ) -> None:
        self._session_store = session_store
        self._navigator = navigator
        self._guard = guard

    def cleanup_location(self) -> None:
        current = self._navigator.current_url()
        cleaned = remove_query_params(current, OAUTH_QUERY_PARAMS)
        if cleaned != current:
            self._navigator.replace_url(cleaned)

    async def process(
        self,
        *,
        current_flow_id: str | None,
        submit: SubmitCode,
    ) -> FlowResponse | None:
        params = self._navigator.params()

        if params.error:
            self._guard.consume()
            self.cleanup_location()
            LOGGER.warning("Identity provider returned error=%s", params.error)
            raise OAuthProviderError(params.error, params.error_description)

        if not params.code or self._guard.consumed:
            return None

        if await self._session_store.is_code_consumed(params.code):
            self._guard.consume()
            self.cleanup_location()
            LOGGER.info("Ignoring authorization code that was already exchanged")
            return None

        flow_id = resolve_callback_flow_id(
            params,
            current_flow_id=current_flow_id,
            stored_flow_id=await self._session_store.get_flow_id(),
        )
        if not flow_id:
            self._guard.consume()
            self.cleanup_location()
            raise MissingFlowError()

        if not self._guard.consume():
            return None
        await self._session_store.remember_code(params.code)

        inputs = {"code": params.code}
        if params.nonce:
            inputs["nonce"] = params.nonce

        LOGGER.info("Submitting authorization code flow_id=%s", flow_id)
        try:
            response = await submit(flow_id, inputs)
        finally:
            self.cleanup_location()

        if response is not None and response.flow_status is FlowStatus.ERROR:
            await self._session_store.clear()
            message = response.failure_reason or DEFAULT_FAILURE_MESSAGE
            raise FlowInvalidatedError(message, response.failure_reason)
        return response


@dataclass
class LandingResult:
    target: str
    record: CsrfStateRecord | None = None
    error: FlowError | None = None


class CallbackLanding:
    """Validates the identity provider's return and forwards it to the page that started it."""

    def __init__(self, csrf_store: CsrfStateStore, *, base_path: str = "") -> None:
        self._csrf_store = csrf_store
        self.base_path = base_path

    async def validate(self, params: LocationParams) -> CsrfStateRecord:
        if not params.state:
            raise CsrfValidationError("Missing OAuth state parameter - possible security issue")
        return await self._csrf_store.consume(params.state)

    def _target(self, return_path: str, query: dict[str, str]) -> str:
        return with_query(join_base_path(self.base_path, return_path), query)

    @staticmethod
    def _error_query(error: str, description: str | None) -> dict[str, str]:
        query = {"error": error}
        if description:
            query["error_description"] = description
        return query

    async def forward(self, url: str) -> LandingResult:
        params = LocationParams.from_url(url)

        if params.error and params.state and await self._csrf_store.peek(params.state) is None:
            provider_error = OAuthProviderError(params.error, params.error_description)
            return LandingResult(
                target=self._target("/", self._error_query(params.error, params.error_description)),
                error=provider_error,
            )

        return_path = "/"
        try:
            record = await self.validate(params)
            return_path = record.return_path

            if params.error:
                return LandingResult(
                    target=self._target(
                        return_path, self._error_query(params.error, params.error_description)
                    ),
                    record=record,
                    error=OAuthProviderError(params.error, params.error_description),
                )

            if not params.code:
                raise CsrfValidationError("Missing OAuth authorization code")

            query = {"code": params.code}
            if params.nonce:
                query["nonce"] = params.nonce
            return LandingResult(target=self._target(return_path, query), record=record)
        except CsrfValidationError as error:
            LOGGER.warning("OAuth callback rejected: %s", error)
            return LandingResult(
                target=self._target(
                    return_path, self._error_query("callback_error", str(error))
                ),
                error=error,
            )
