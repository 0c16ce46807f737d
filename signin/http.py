from __future__ import annotations

from typing import Any

import httpx

from .constants import AUTHENTICATION_FLOW_TYPE, FLOW_EXECUTE_PATH, LOGGER
from .errors import ConfigurationError, TransportError


def compact_inputs(inputs: dict[str, Any] | None) -> dict[str, Any]:
    if not inputs:
        return {}
    return {key: value for key, value in inputs.items() if value is not None and value != ""}


def build_initiate_payload(
    *,
    flow_id: str | None = None,
    application_id: str | None = None,
    flow_type: str = AUTHENTICATION_FLOW_TYPE,
) -> dict[str, Any]:
    if flow_id:
        return {"flowId": flow_id, "verbose": True}
    if application_id:
        return {"applicationId": application_id, "flowType": flow_type, "verbose": True}
    raise ConfigurationError("Either flowId or applicationId is required for authentication")


def build_submit_payload(
    flow_id: str,
    *,
    inputs: dict[str, Any] | None = None,
    action: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"flowId": flow_id, "verbose": True}
    if action:
        payload["action"] = action
    cleaned = compact_inputs(inputs)
    if cleaned:
        payload["inputs"] = cleaned
    return payload


class FlowClient:
    """Talks to the flow-execution endpoint of the identity platform."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        if not base_url:
            raise ConfigurationError("A base URL is required to execute flows.")
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            **(headers or {}),
        }
        self._timeout = timeout

    @property
    def execute_url(self) -> str:
        return f"{self.base_url}{FLOW_EXECUTE_PATH}"

    async def execute(self, payload: dict[str, Any]) -> dict[str, Any]:
        own_client = self._client is None
        http_client = self._client or httpx.AsyncClient(timeout=self._timeout)

        LOGGER.debug(
            "Executing flow step endpoint=%s flow_id=%s action=%s",
            self.execute_url,
            payload.get("flowId"),
            payload.get("action"),
        )
        try:
            response = await http_client.post(
                self.execute_url,
                json=payload,
                headers=self._headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as error:
            detail = error.response.text
            LOGGER.warning(
                "Flow request failed status=%s endpoint=%s",
                error.response.status_code,
                self.execute_url,
            )
            raise TransportError(
                f"Flow request failed with status {error.response.status_code}: {detail}",
                status_code=error.response.status_code,
                detail=detail,
            ) from error
        except httpx.HTTPError as error:
            LOGGER.warning("Flow request failed endpoint=%s error=%s", self.execute_url, error)
            raise TransportError(f"Flow request failed: {error}") from error
        finally:
            if own_client:
                await http_client.aclose()

        try:
            body = response.json()
        except ValueError as error:
            raise TransportError(
                "Flow endpoint returned a non-JSON body.",
                status_code=response.status_code,
                detail=response.text,
            ) from error
        if not isinstance(body, dict):
            raise TransportError(
                "Flow endpoint returned an unexpected body.",
                status_code=response.status_code,
            )
        return body

    async def initiate(
        self,
        *,
        flow_id: str | None = None,
        application_id: str | None = None,
    ) -> dict[str, Any]:
        return await self.execute(
            build_initiate_payload(flow_id=flow_id, application_id=application_id)
        )

    async def submit(
        self,
        flow_id: str,
        *,
        inputs: dict[str, Any] | None = None,
        action: str | None = None,
    ) -> dict[str, Any]:
        return await self.execute(build_submit_payload(flow_id, inputs=inputs, action=action))

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
