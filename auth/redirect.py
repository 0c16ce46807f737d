from __future__ import annotations

from auth.csrf import CsrfStateStore
from auth.session_store import FlowSessionStore
from auth.urls import append_query_params, compute_return_path
from signin.constants import LOGGER
from signin.location import Navigator
from signin.models import FlowResponse, FlowType


def is_redirection(response: FlowResponse) -> bool:
    return response.type is FlowType.REDIRECTION and bool(response.redirect_url)


class RedirectHandler:
    def __init__(
        self,
        *,
        csrf_store: CsrfStateStore,
        session_store: FlowSessionStore,
        navigator: Navigator,
    ) -> None:
        self._csrf_store = csrf_store
        self._session_store = session_store
        self._navigator = navigator

    async def handle(self, response: FlowResponse) -> str:
        """Hand control to the identity provider and return the URL navigated to."""
        if not is_redirection(response):
            raise ValueError("Response is not a redirection step.")

        current_url = self._navigator.current_url()
        return_path = compute_return_path(current_url, self._navigator.base_path)
        record = await self._csrf_store.mint(return_path)

        if response.flow_id:
            await self._session_store.set_flow_id(response.flow_id)
        auth_id = self._navigator.params().auth_id
        if auth_id:
            await self._session_store.set_auth_id(auth_id)

        target = append_query_params(response.redirect_url, {"state": record.state})
        LOGGER.info(
            "Redirecting to identity provider flow_id=%s return_path=%s",
            response.flow_id,
            return_path,
        )
        self._navigator.navigate(target)
        return target
