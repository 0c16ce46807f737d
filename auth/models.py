from __future__ import annotations

import json
from dataclasses import dataclass

from signin.constants import CSRF_STATE_TTL_MS


@dataclass
class CsrfStateRecord:
    state: str
    return_path: str
    created_at: float

    def expired(self, now_ms: float, ttl_ms: int = CSRF_STATE_TTL_MS) -> bool:
        return (now_ms - self.created_at) > ttl_ms

    def to_json(self) -> str:
        return json.dumps(
            {"state": self.state, "path": self.return_path, "timestamp": self.created_at},
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, state: str, raw: str) -> "CsrfStateRecord":
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("CSRF state record must be a JSON object.")
        timestamp = payload.get("timestamp")
        if not isinstance(timestamp, (int, float)):
            raise ValueError("CSRF state record is missing its timestamp.")
        return cls(
            state=state,
            return_path=payload.get("path") or "/",
            created_at=float(timestamp),
        )
