from __future__ import annotations

import contextlib
import os
from typing import Any, Callable

import httpx
from starlette.applications import Starlette

from auth.csrf import CsrfStateStore
from auth.passkey import CredentialProvider
from auth.routes import SignInRoutes
from auth.session_store import FlowSessionStore
from auth.storage import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore

from .constants import LOGGER
from .env import FlowConfig, load_config, load_env, setup_logging
from .errors import FlowError
from .http import FlowClient
from .location import Navigator
from .normalizer import TextResolver
from .orchestrator import SignInFlow


def build_store(config: FlowConfig) -> KeyValueStore:
    if config.storage_path:
        return FileKeyValueStore(config.storage_path)
    return MemoryKeyValueStore()


def create_sign_in_flow(
    config: FlowConfig,
    *,
    navigator: Navigator,
    store: KeyValueStore | None = None,
    client: FlowClient | None = None,
    namespace: str | None = None,
    credential_provider: CredentialProvider | None = None,
    resolver: TextResolver | None = None,
    on_success: Callable[[dict[str, Any]], None] | None = None,
    on_error: Callable[[FlowError], None] | None = None,
) -> SignInFlow:
    store = store or build_store(config)
    namespace = namespace or config.storage_namespace
    return SignInFlow(
        client=client or FlowClient(config.base_url, timeout=config.request_timeout),
        session_store=FlowSessionStore(store, namespace=namespace),
        csrf_store=CsrfStateStore(store, namespace=namespace),
        navigator=navigator,
        credential_provider=credential_provider,
        application_id=config.application_id,
        after_sign_in_url=config.after_sign_in_url,
        resolver=resolver,
        auto_passkey=config.auto_passkey,
        on_success=on_success,
        on_error=on_error,
    )


def create_app(
    config: FlowConfig | None = None,
    *,
    store: KeyValueStore | None = None,
    http_client: httpx.AsyncClient | None = None,
    credential_provider: CredentialProvider | None = None,
) -> Starlette:
    if config is None:
        load_env()
        setup_logging()
        config = load_config()

    store = store or build_store(config)
    http_client = http_client or httpx.AsyncClient(timeout=config.request_timeout)
    flow_client = FlowClient(config.base_url, client=http_client)

    def flow_factory(navigator: Navigator, namespace: str) -> SignInFlow:
        return create_sign_in_flow(
            config,
            navigator=navigator,
            store=store,
            client=flow_client,
            namespace=namespace,
            credential_provider=credential_provider,
        )

    routes = SignInRoutes(
        flow_factory=flow_factory,
        store=store,
        storage_namespace=config.storage_namespace,
        base_path=config.base_path,
        cors_origins=config.cors_origins,
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        del app
        yield
        await flow_client.aclose()

    LOGGER.info(
        "Sign-in flow app ready base_url=%s base_path=%s",
        config.base_url,
        config.base_path or "/",
    )
    return Starlette(routes=routes.routes(), lifespan=lifespan)


def main() -> None:
    import uvicorn

    host = os.getenv("SIGNIN_FLOW_HOST", "127.0.0.1")
    port = int(os.getenv("SIGNIN_FLOW_PORT", "8000"))
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
