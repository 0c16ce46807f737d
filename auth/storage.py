from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path


class KeyValueStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._values)


class FileKeyValueStore(KeyValueStore):
    def __init__(self, path: str | Path = ".signin-flow.json") -> None:
        self._path = Path(path)

    async def get(self, key: str) -> str | None:
        value = self._load_records().get(key)
        if value is None:
            return None
        return str(value)

    async def set(self, key: str, value: str) -> None:
        records = self._load_records()
        records[key] = value
        self._save_records(records)

    async def delete(self, key: str) -> None:
        records = self._load_records()
        if records.pop(key, None) is not None:
            self._save_records(records)

    def _load_records(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}

        try:
            records = json.loads(text)
        except json.JSONDecodeError as error:
            raise RuntimeError(f"Flow store {self._path} is not valid JSON.") from error
        if not isinstance(records, dict):
            raise RuntimeError(
                f"Flow store {self._path} is invalid; expected top-level JSON object."
            )
        return records

    def _save_records(self, records: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(records, handle, sort_keys=True)
            # Atomic swap; a crash mid-write leaves the previous file intact.
            os.replace(tmp_path, self._path)
        finally:
            tmp_path.unlink(missing_ok=True)
