from __future__ import annotations

import asyncio
from typing import Any, Callable

from auth.callback import OAuthCallbackProcessor
from auth.csrf import CsrfStateStore
from auth.passkey import CredentialProvider, PasskeyHandler
from auth.redirect import RedirectHandler, is_redirection
from auth.session_store import FlowSessionStore
from auth.urls import remove_query_params

from .constants import (
    DEFAULT_FAILURE_MESSAGE,
    FLOW_QUERY_PARAMS,
    LOGGER,
    OAUTH_QUERY_PARAMS,
)
from .errors import (
    ConfigurationError,
    FlowError,
    FlowInvalidatedError,
    InvalidTransitionError,
    MissingFlowError,
)
from .http import FlowClient
from .location import Navigator
from .models import (
    FlowComponent,
    FlowResponse,
    FlowSnapshot,
    FlowStatus,
    OneShotGuard,
    PasskeyCeremonyState,
    StepPayload,
)
from .normalizer import TextResolver, normalize_flow_response
from .statechart import BUSY_STATES, FlowEvent, FlowState, can_transition, next_state

Listener = Callable[[FlowSnapshot], None]


class SignInFlow:
    """Drives one embedded sign-in flow from first step to completion.

    Page-load triggers (``start``, ``initialize``, ``handle_callback``) are
    serialized through one lock. Step submissions are not queued: while one is
    in flight any further attempt is ignored.
    """

    def __init__(
        self,
        *,
        client: FlowClient,
        session_store: FlowSessionStore,
        csrf_store: CsrfStateStore,
        navigator: Navigator,
        credential_provider: CredentialProvider | None = None,
        application_id: str | None = None,
        after_sign_in_url: str | None = None,
        resolver: TextResolver | None = None,
        resolve_text: bool = True,
        auto_passkey: bool = True,
        on_success: Callable[[dict[str, Any]], None] | None = None,
        on_error: Callable[[FlowError], None] | None = None,
    ) -> None:
        self._client = client
        self._session = session_store
        self._navigator = navigator
        self._application_id = application_id
        self._after_sign_in_url = after_sign_in_url
        self._resolver = resolver
        self._resolve_text = resolve_text
        self._auto_passkey = auto_passkey
        self._on_success = on_success
        self._on_error = on_error

        self.state = FlowState.UNINITIALIZED
        self.flow_id: str | None = None
        self.components: list[FlowComponent] = []
        self.error: FlowError | None = None
        self.is_initialized = False
        self.passkey: PasskeyCeremonyState | None = None

        self.code_guard = OneShotGuard("authorization_code")
        self.passkey_guard = OneShotGuard("passkey_ceremony")
        self._submitting = False
        self._events = asyncio.Lock()
        self._listeners: list[Listener] = []

        self._redirect = RedirectHandler(
            csrf_store=csrf_store,
            session_store=session_store,
            navigator=navigator,
        )
        self._callback = OAuthCallbackProcessor(
            session_store=session_store,
            navigator=navigator,
            guard=self.code_guard,
        )
        self._passkey = PasskeyHandler(credential_provider)

    # -- observation -----------------------------------------------------------

    @property
    def is_loading(self) -> bool:
        return self._submitting or self.state in BUSY_STATES

    def snapshot(self) -> FlowSnapshot:
        return FlowSnapshot(
            state=self.state.value,
            flow_id=self.flow_id,
            components=list(self.components),
            error=self.error,
            is_loading=self.is_loading,
            is_initialized=self.is_initialized,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def _transition(self, event: FlowEvent) -> None:
        previous = self.state
        self.state = next_state(previous, event)
        LOGGER.info("Flow transition %s -(%s)-> %s", previous.value, event.value, self.state.value)
        self._notify()

    # -- page-load events ------------------------------------------------------

    async def start(self) -> FlowResponse | None:
        """Handle a page load: process a returning callback, otherwise start a flow."""
        has_callback = self._navigator.params().has_callback

        async with self._events:
            response = await self._handle_callback()

        async with self._events:
            if has_callback or self.state is not FlowState.UNINITIALIZED or self.flow_id:
                return response
            return await self._initialize()

    async def initialize(
        self,
        flow_id: str | None = None,
        application_id: str | None = None,
    ) -> FlowResponse | None:
        async with self._events:
            return await self._initialize(flow_id, application_id)

    async def handle_callback(self) -> FlowResponse | None:
        async with self._events:
            return await self._handle_callback()

    async def reset(self) -> None:
        async with self._events:
            await self._session.clear()
            self.flow_id = None
            self.components = []
            self.error = None
            self.is_initialized = False
            self.passkey = None
            self.code_guard.reset()
            self.passkey_guard.reset()
            self._transition(FlowEvent.RESET)

    async def _initialize(
        self,
        flow_id: str | None = None,
        application_id: str | None = None,
    ) -> FlowResponse | None:
        params = self._navigator.params()
        self._transition(FlowEvent.INITIALIZE_REQUESTED)
        self.code_guard.reset()
        self.error = None
        self.components = []
        self.passkey = None

        if params.auth_id:
            await self._session.set_auth_id(params.auth_id)

        resume_flow_id = flow_id or params.flow_id
        effective_application_id = application_id or self._application_id or params.application_id
        if not resume_flow_id:
            await self._set_flow_id(None)
        if not resume_flow_id and not effective_application_id:
            await self._fail(
                ConfigurationError("Either flowId or applicationId is required for authentication")
            )
            return None

        try:
            if resume_flow_id:
                raw = await self._client.initiate(flow_id=resume_flow_id)
            else:
                raw = await self._client.initiate(application_id=effective_application_id)
            response = self._normalize(raw)
        except FlowError as error:
            await self._fail(error)
            return None

        return await self._apply_response(response, fallback_flow_id=resume_flow_id)

    async def _handle_callback(self) -> FlowResponse | None:
        params = self._navigator.params()
        if not params.code and not params.error:
            return None

        try:
            response = await self._callback.process(
                current_flow_id=self.flow_id,
                submit=self._submit_code,
            )
        except FlowError as error:
            await self._fail(error)
            return None

        if response is None:
            return None
        return await self._apply_response(response, fallback_flow_id=self.flow_id)

    # -- submissions -----------------------------------------------------------

    async def submit(self, payload: StepPayload | dict[str, Any]) -> FlowResponse | None:
        if self._submitting or self.state in (
            FlowState.SUBMITTING,
            FlowState.RUNNING_PASSKEY_CEREMONY,
        ):
            LOGGER.warning("Ignoring step submission while another one is pending")
            return None
        if not can_transition(self.state, FlowEvent.SUBMIT_REQUESTED):
            raise InvalidTransitionError(self.state.value, FlowEvent.SUBMIT_REQUESTED.value)

        step = payload if isinstance(payload, StepPayload) else StepPayload.from_payload(payload)
        flow_id = step.flow_id or self.flow_id
        if not flow_id:
            flow_id = await self._session.get_flow_id()
        if not flow_id:
            raise MissingFlowError("No active flow ID")
        if self._submitting:
            LOGGER.warning("Ignoring step submission while another one is pending")
            return None
        self._submitting = True

        try:
            response = await self._exchange(
                flow_id,
                step.inputs,
                step.action,
                FlowEvent.SUBMIT_REQUESTED,
            )
        except FlowError as error:
            await self._fail(error)
            return None
        return await self._apply_response(response, fallback_flow_id=flow_id)

    async def _submit_code(self, flow_id: str, inputs: dict[str, str]) -> FlowResponse | None:
        if self._submitting:
            LOGGER.warning("Ignoring authorization code while another submission is pending")
            return None
        self._submitting = True
        if not self.flow_id:
            self.flow_id = flow_id
        return await self._exchange(flow_id, inputs, None, FlowEvent.CALLBACK_RECEIVED)

    async def _exchange(
        self,
        flow_id: str,
        inputs: dict[str, Any],
        action: str | None,
        event: FlowEvent,
    ) -> FlowResponse:
        """Send one step; the caller has already claimed the in-flight slot."""
        try:
            self._transition(event)
            self.error = None
            raw = await self._client.submit(flow_id, inputs=inputs, action=action)
            return self._normalize(raw)
        finally:
            self._submitting = False

    async def run_passkey_ceremony(self) -> FlowResponse | None:
        ceremony = self.passkey
        if ceremony is None or not ceremony.is_active:
            return None
        if not self.passkey_guard.consume():
            LOGGER.info("Passkey ceremony already handled flow_id=%s", ceremony.flow_id)
            return None

        try:
            inputs = await self._passkey.perform(ceremony)
        except FlowError as error:
            ceremony.is_active = False
            await self._fail(error)
            return None

        if self._submitting:
            LOGGER.warning("Ignoring passkey result while another submission is pending")
            return None
        self._submitting = True
        try:
            response = await self._exchange(
                ceremony.flow_id,
                inputs,
                None,
                FlowEvent.PASSKEY_FINISHED,
            )
        except FlowError as error:
            await self._fail(error)
            return None
        finally:
            ceremony.is_active = False
            if self.passkey is ceremony:
                self.passkey = None

        return await self._apply_response(response, fallback_flow_id=ceremony.flow_id)

    # -- responses -------------------------------------------------------------

    def _normalize(self, raw: dict[str, Any]) -> FlowResponse:
        return normalize_flow_response(raw, resolver=self._resolver, resolve=self._resolve_text)

    async def _apply_response(
        self,
        response: FlowResponse,
        *,
        fallback_flow_id: str | None,
    ) -> FlowResponse:
        if response.is_terminal:
            if response.flow_status is FlowStatus.ERROR:
                message = response.failure_reason or DEFAULT_FAILURE_MESSAGE
                await self._fail(FlowInvalidatedError(message, response.failure_reason))
            else:
                await self._complete(response)
            return response

        flow_id = response.flow_id or fallback_flow_id or self.flow_id

        if is_redirection(response):
            await self._set_flow_id(flow_id)
            self.code_guard.reset()
            self._transition(FlowEvent.REDIRECT_STARTED)
            try:
                await self._redirect.handle(response)
            except FlowError as error:
                await self._fail(error)
            return response

        ceremony = PasskeyHandler.detect(response, flow_id)
        if ceremony is not None:
            await self._set_flow_id(ceremony.flow_id)
            self.passkey = ceremony
            self.passkey_guard.reset()
            self._transition(FlowEvent.PASSKEY_STARTED)
            if self._auto_passkey:
                await self.run_passkey_ceremony()
            return response

        await self._set_flow_id(flow_id)
        self.components = response.components
        self.is_initialized = True
        self._cleanup_location(FLOW_QUERY_PARAMS)
        self._transition(FlowEvent.STEP_RECEIVED)
        return response

    async def _complete(self, response: FlowResponse) -> None:
        target = response.completion_url or self._after_sign_in_url
        await self._session.clear()
        self.flow_id = None
        self.components = []
        self.is_initialized = False
        self.passkey = None
        self._cleanup_location(OAUTH_QUERY_PARAMS + FLOW_QUERY_PARAMS)
        self._transition(FlowEvent.FLOW_COMPLETED)
        LOGGER.info("Sign-in flow completed redirect=%s", target)

        if self._on_success is not None:
            self._on_success({"redirectUrl": target, **response.data})
        if target:
            self._navigator.navigate(target)

    async def _fail(self, error: FlowError) -> None:
        await self._session.clear()
        self.flow_id = None
        self.passkey = None
        self.error = error
        self.is_initialized = True
        self._cleanup_location(OAUTH_QUERY_PARAMS + FLOW_QUERY_PARAMS)
        LOGGER.warning("Sign-in flow failed code=%s: %s", error.code, error)

        if self.state is FlowState.ERROR:
            self._notify()
        else:
            self._transition(FlowEvent.FLOW_FAILED)
        if self._on_error is not None:
            self._on_error(error)

    async def _set_flow_id(self, flow_id: str | None) -> None:
        self.flow_id = flow_id
        await self._session.set_flow_id(flow_id)

    def _cleanup_location(self, names: tuple[str, ...]) -> None:
        current = self._navigator.current_url()
        cleaned = remove_query_params(current, names)
        if cleaned != current:
            self._navigator.replace_url(cleaned)
