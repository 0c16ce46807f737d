import pytest

from auth.csrf import CsrfStateStore
from auth.session_store import FlowSessionStore
from auth.storage import MemoryKeyValueStore
from signin.env import FlowConfig


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def session_store(store) -> FlowSessionStore:
    return FlowSessionStore(store)


@pytest.fixture
def csrf_store(store) -> CsrfStateStore:
    return CsrfStateStore(store)


@pytest.fixture
def flow_config() -> FlowConfig:
    return FlowConfig(
        base_url="https://api.example.com/t/acme",
        application_id="app-1",
        after_sign_in_url="https://app.example/home",
        cors_origins={"https://app.example"},
    )
