from __future__ import annotations

import urllib.parse
from typing import Iterable


def append_query_params(url: str, params: dict[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key, value in params.items():
        existing[key] = [value]

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))


def remove_query_params(url: str, names: Iterable[str]) -> str:
    parsed = urllib.parse.urlparse(url)
    drop = set(names)
    kept = [
        (key, value)
        for key, value in urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
        if key not in drop
    ]
    return urllib.parse.urlunparse(parsed._replace(query=urllib.parse.urlencode(kept)))


def query_params(url: str) -> dict[str, str]:
    """First value of every non-blank query parameter."""
    parsed = urllib.parse.urlparse(url)
    params: dict[str, str] = {}
    for key, value in urllib.parse.parse_qsl(parsed.query):
        params.setdefault(key, value)
    return params


def compute_return_path(url: str, base_path: str = "") -> str:
    path = urllib.parse.urlparse(url).path or "/"
    base = base_path.rstrip("/")
    if base and (path == base or path.startswith(f"{base}/")):
        path = path[len(base):]
    return path or "/"


def join_base_path(base_path: str, path: str) -> str:
    base = base_path.rstrip("/")
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{base}{path}" if base else path


def with_query(path: str, params: dict[str, str]) -> str:
    if not params:
        return path
    return f"{path}?{urllib.parse.urlencode(params)}"
