from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from auth.urls import query_params


@dataclass(frozen=True)
class LocationParams:
    code: str | None = None
    state: str | None = None
    nonce: str | None = None
    error: str | None = None
    error_description: str | None = None
    flow_id: str | None = None
    auth_id: str | None = None
    application_id: str | None = None

    @classmethod
    def from_url(cls, url: str) -> "LocationParams":
        params = query_params(url)
        return cls(
            code=params.get("code"),
            state=params.get("state"),
            nonce=params.get("nonce"),
            error=params.get("error"),
            error_description=params.get("error_description"),
            flow_id=params.get("flowId"),
            auth_id=params.get("authId"),
            application_id=params.get("applicationId"),
        )

    @property
    def has_callback(self) -> bool:
        return bool(self.code or self.error)


class Navigator(ABC):
    """The host's current location and the ways the engine may change it."""

    base_path: str = ""

    @abstractmethod
    def current_url(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def replace_url(self, url: str) -> None:
        """Rewrite the visible location without loading a new page."""
        raise NotImplementedError

    @abstractmethod
    def navigate(self, url: str) -> None:
        """Leave the current page for ``url`` (full-document navigation)."""
        raise NotImplementedError

    def params(self) -> LocationParams:
        return LocationParams.from_url(self.current_url())


class MemoryNavigator(Navigator):
    def __init__(self, url: str, *, base_path: str = "") -> None:
        self._url = url
        self.base_path = base_path
        self.navigations: list[str] = []
        self.replacements: list[str] = []

    def current_url(self) -> str:
        return self._url

    def replace_url(self, url: str) -> None:
        self.replacements.append(url)
        self._url = url

    def navigate(self, url: str) -> None:
        self.navigations.append(url)

    @property
    def last_navigation(self) -> str | None:
        return self.navigations[-1] if self.navigations else None

    def load(self, url: str) -> None:
        """Simulate a fresh page load at ``url``."""
        self._url = url
        self.navigations.clear()
        self.replacements.clear()
