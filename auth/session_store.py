from __future__ import annotations

import hashlib

from auth.storage import KeyValueStore
from signin.constants import (
    AUTH_ID_KEY,
    CONSUMED_CODE_KEY,
    DEFAULT_STORAGE_NAMESPACE,
    FLOW_ID_KEY,
)
from signin.models import FlowSession


class FlowSessionStore:
    """Persists the active flow id and auth id across full-page navigations.

    Keys are prefixed with ``namespace`` so that several engines can share one
    backing store without reading each other's flows.
    """

    def __init__(self, store: KeyValueStore, *, namespace: str = DEFAULT_STORAGE_NAMESPACE) -> None:
        self._store = store
        self.namespace = namespace

    @property
    def flow_id_key(self) -> str:
        return f"{self.namespace}:{FLOW_ID_KEY}"

    @property
    def auth_id_key(self) -> str:
        return f"{self.namespace}:{AUTH_ID_KEY}"

    @property
    def consumed_code_key(self) -> str:
        return f"{self.namespace}:{CONSUMED_CODE_KEY}"

    async def set_flow_id(self, flow_id: str | None) -> None:
        if flow_id:
            await self._store.set(self.flow_id_key, flow_id)
        else:
            await self._store.delete(self.flow_id_key)

    async def get_flow_id(self) -> str | None:
        return await self._store.get(self.flow_id_key)

    async def set_auth_id(self, auth_id: str) -> None:
        await self._store.set(self.auth_id_key, auth_id)

    async def get_auth_id(self) -> str | None:
        return await self._store.get(self.auth_id_key)

    async def load(self) -> FlowSession:
        return FlowSession(flow_id=await self.get_flow_id(), auth_id=await self.get_auth_id())

    async def clear(self) -> None:
        await self._store.delete(self.flow_id_key)
        await self._store.delete(self.auth_id_key)

    # The consumed-code marker is left in place by clear(): a reload of the
    # callback URL after completion or failure must still not re-submit.
    async def remember_code(self, code: str) -> None:
        await self._store.set(self.consumed_code_key, _digest(code))

    async def is_code_consumed(self, code: str) -> bool:
        return await self._store.get(self.consumed_code_key) == _digest(code)


def _digest(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()
