from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from .constants import DEFAULT_STORAGE_NAMESPACE, LOGGER

_HTTP_URL = TypeAdapter(AnyHttpUrl)


@dataclass
class FlowConfig:
    base_url: str
    application_id: str | None = None
    after_sign_in_url: str | None = None
    base_path: str = ""
    storage_namespace: str = DEFAULT_STORAGE_NAMESPACE
    storage_path: str | None = None
    request_timeout: int = 10
    cors_origins: set[str] = field(default_factory=set)
    auto_passkey: bool = True


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(key: str) -> set[str]:
    raw = os.getenv(key, "")
    if not raw.strip():
        return set()
    return {item.strip() for item in raw.split(",") if item.strip()}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_str(key: str) -> str | None:
    value = os.getenv(key, "").strip()
    return value or None


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def validate_env() -> None:
    base_url = os.getenv("SIGNIN_FLOW_BASE_URL", "").strip()
    if not base_url:
        raise RuntimeError("Missing required environment variable: SIGNIN_FLOW_BASE_URL")

    try:
        _HTTP_URL.validate_python(base_url)
    except ValidationError:
        raise RuntimeError(
            "SIGNIN_FLOW_BASE_URL must be a valid HTTP(S) URL (for example: "
            "https://api.example.com/t/acme)."
        )

    if not _get_env_str("SIGNIN_FLOW_APPLICATION_ID"):
        LOGGER.warning(
            "SIGNIN_FLOW_APPLICATION_ID is not set; flows can only start from a flowId "
            "or applicationId in the URL."
        )


def load_config() -> FlowConfig:
    validate_env()
    base_path = os.getenv("SIGNIN_FLOW_BASE_PATH", "").strip().rstrip("/")
    auto_passkey_raw = os.getenv("SIGNIN_FLOW_AUTO_PASSKEY")
    return FlowConfig(
        base_url=os.getenv("SIGNIN_FLOW_BASE_URL", "").strip().rstrip("/"),
        application_id=_get_env_str("SIGNIN_FLOW_APPLICATION_ID"),
        after_sign_in_url=_get_env_str("SIGNIN_FLOW_AFTER_SIGN_IN_URL"),
        base_path=base_path,
        storage_namespace=_get_env_str("SIGNIN_FLOW_STORAGE_NAMESPACE")
        or DEFAULT_STORAGE_NAMESPACE,
        storage_path=_get_env_str("SIGNIN_FLOW_STORAGE_PATH"),
        request_timeout=_get_env_int("SIGNIN_FLOW_REQUEST_TIMEOUT", 10),
        cors_origins=parse_csv_env("SIGNIN_FLOW_CORS_ORIGINS"),
        auto_passkey=True if auto_passkey_raw is None else is_truthy(auto_passkey_raw),
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("SIGNIN_FLOW_DEBUG", "0"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
