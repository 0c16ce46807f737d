from __future__ import annotations

import secrets
import time
from typing import Callable

from auth.models import CsrfStateRecord
from auth.storage import KeyValueStore
from signin.constants import (
    CSRF_STATE_KEY_PREFIX,
    CSRF_STATE_TTL_MS,
    DEFAULT_STORAGE_NAMESPACE,
    LOGGER,
)
from signin.errors import CsrfValidationError


def _now_ms() -> float:
    return time.time() * 1000


def generate_state() -> str:
    return secrets.token_urlsafe(24)


class CsrfStateStore:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        namespace: str = DEFAULT_STORAGE_NAMESPACE,
        ttl_ms: int = CSRF_STATE_TTL_MS,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        self._store = store
        self.namespace = namespace
        self.ttl_ms = ttl_ms
        self._clock = clock

    def key_for(self, state: str) -> str:
        return f"{self.namespace}:{CSRF_STATE_KEY_PREFIX}:{state}"

    async def mint(self, return_path: str) -> CsrfStateRecord:
        record = CsrfStateRecord(
            state=generate_state(),
            return_path=return_path or "/",
            created_at=self._clock(),
        )
        await self._store.set(self.key_for(record.state), record.to_json())
        return record

    async def peek(self, state: str) -> CsrfStateRecord | None:
        raw = await self._store.get(self.key_for(state))
        if raw is None:
            return None
        try:
            return CsrfStateRecord.from_json(state, raw)
        except ValueError:
            return None

    async def consume(self, state: str) -> CsrfStateRecord:
        """Read the record for ``state`` once and delete it.

        Raises CsrfValidationError when the record is absent, unreadable or
        older than the TTL.
        """
        key = self.key_for(state)
        raw = await self._store.get(key)
        if raw is None:
            LOGGER.warning("Rejected OAuth state with no stored record")
            raise CsrfValidationError("Invalid OAuth state - possible CSRF attack")

        await self._store.delete(key)
        try:
            record = CsrfStateRecord.from_json(state, raw)
        except ValueError as error:
            raise CsrfValidationError(f"Invalid OAuth state record: {error}") from error

        if record.expired(self._clock(), self.ttl_ms):
            LOGGER.warning("Rejected expired OAuth state created_at=%s", record.created_at)
            raise CsrfValidationError("OAuth state expired - please try again")
        return record
