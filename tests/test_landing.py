import urllib.parse

import pytest

from auth.callback import CallbackLanding
from auth.csrf import CsrfStateStore
from auth.storage import MemoryKeyValueStore
from signin.errors import CsrfValidationError, OAuthProviderError
from signin.location import LocationParams


def _query(target: str) -> dict[str, list[str]]:
    return urllib.parse.parse_qs(urllib.parse.urlparse(target).query)


@pytest.mark.asyncio
async def test_valid_state_forwards_code_to_return_path(csrf_store) -> None:
    record = await csrf_store.mint("/signin")
    landing = CallbackLanding(csrf_store, base_path="/auth")

    result = await landing.forward(
        f"https://app.example/auth/callback?code=abc&nonce=n1&state={record.state}"
    )

    assert result.error is None
    assert result.record.return_path == "/signin"
    assert result.target == "/auth/signin?code=abc&nonce=n1"


@pytest.mark.asyncio
async def test_validate_resolves_record_return_path(csrf_store) -> None:
    record = await csrf_store.mint("/profile/login")
    landing = CallbackLanding(csrf_store)

    resolved = await landing.validate(LocationParams(code="abc", state=record.state))

    assert resolved.return_path == "/profile/login"


@pytest.mark.asyncio
async def test_validate_rejects_missing_state(csrf_store) -> None:
    with pytest.raises(CsrfValidationError, match="Missing OAuth state"):
        await CallbackLanding(csrf_store).validate(LocationParams(code="abc"))


@pytest.mark.asyncio
async def test_unknown_state_redirects_with_callback_error(csrf_store) -> None:
    result = await CallbackLanding(csrf_store).forward(
        "https://app.example/callback?code=abc&state=forged"
    )

    assert isinstance(result.error, CsrfValidationError)
    assert result.target.startswith("/?")
    assert _query(result.target)["error"] == ["callback_error"]
    assert "CSRF" in _query(result.target)["error_description"][0]


@pytest.mark.asyncio
async def test_expired_state_rejected() -> None:
    now = [1_000_000.0]
    csrf_store = CsrfStateStore(MemoryKeyValueStore(), clock=lambda: now[0])
    record = await csrf_store.mint("/signin")
    now[0] += 600_001

    result = await CallbackLanding(csrf_store).forward(
        f"https://app.example/callback?code=abc&state={record.state}"
    )

    assert isinstance(result.error, CsrfValidationError)
    assert "expired" in _query(result.target)["error_description"][0]


@pytest.mark.asyncio
async def test_provider_error_with_known_state_returns_to_page(csrf_store) -> None:
    record = await csrf_store.mint("/signin")

    result = await CallbackLanding(csrf_store).forward(
        f"https://app.example/callback?error=access_denied&state={record.state}"
    )

    assert isinstance(result.error, OAuthProviderError)
    assert result.target == "/signin?error=access_denied"


@pytest.mark.asyncio
async def test_provider_error_with_unknown_state_goes_home(csrf_store) -> None:
    result = await CallbackLanding(csrf_store).forward(
        "https://app.example/callback?error=access_denied&error_description=nope&state=gone"
    )

    assert isinstance(result.error, OAuthProviderError)
    assert result.target == "/?error=access_denied&error_description=nope"


@pytest.mark.asyncio
async def test_missing_code_rejected(csrf_store) -> None:
    record = await csrf_store.mint("/signin")

    result = await CallbackLanding(csrf_store).forward(
        f"https://app.example/callback?state={record.state}"
    )

    assert isinstance(result.error, CsrfValidationError)
    assert result.target.startswith("/signin?")
    assert _query(result.target)["error"] == ["callback_error"]
