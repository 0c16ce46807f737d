from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from signin.constants import LOGGER
from signin.errors import CredentialCeremonyError, CredentialUnsupportedError, FlowError
from signin.models import FlowResponse, PasskeyCeremonyState


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


@dataclass
class AssertionCredential:
    id: str
    raw_id: bytes
    authenticator_data: bytes
    client_data_json: bytes
    signature: bytes
    user_handle: bytes | None = None
    type: str = "public-key"
    authenticator_attachment: str | None = None


@dataclass
class AttestationCredential:
    id: str
    raw_id: bytes
    attestation_object: bytes
    client_data_json: bytes
    transports: list[str] = field(default_factory=list)
    type: str = "public-key"
    authenticator_attachment: str | None = None


class CredentialProvider(ABC):
    """Platform credential capability (WebAuthn get/create ceremonies)."""

    @abstractmethod
    def is_supported(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def get_credential(self, options: dict[str, Any]) -> AssertionCredential | None:
        raise NotImplementedError

    @abstractmethod
    async def create_credential(self, options: dict[str, Any]) -> AttestationCredential | None:
        raise NotImplementedError


class UnavailableCredentialProvider(CredentialProvider):
    def is_supported(self) -> bool:
        return False

    async def get_credential(self, options: dict[str, Any]) -> AssertionCredential | None:
        raise CredentialUnsupportedError()

    async def create_credential(self, options: dict[str, Any]) -> AttestationCredential | None:
        raise CredentialUnsupportedError()


def _decode_credential_list(items: Any) -> list[dict[str, Any]]:
    return [{**item, "id": b64url_decode(item["id"])} for item in items]


def decode_request_options(options: dict[str, Any]) -> dict[str, Any]:
    public_key = {**options, "challenge": b64url_decode(options["challenge"])}
    if options.get("allowCredentials"):
        public_key["allowCredentials"] = _decode_credential_list(options["allowCredentials"])
    return public_key


def decode_creation_options(options: dict[str, Any]) -> dict[str, Any]:
    user = options["user"]
    public_key = {
        **options,
        "challenge": b64url_decode(options["challenge"]),
        "user": {**user, "id": b64url_decode(user["id"])},
    }
    if options.get("excludeCredentials"):
        public_key["excludeCredentials"] = _decode_credential_list(options["excludeCredentials"])
    return public_key


def encode_assertion(credential: AssertionCredential) -> dict[str, Any]:
    response = {
        "authenticatorData": b64url_encode(credential.authenticator_data),
        "clientDataJSON": b64url_encode(credential.client_data_json),
        "signature": b64url_encode(credential.signature),
    }
    if credential.user_handle:
        response["userHandle"] = b64url_encode(credential.user_handle)
    encoded: dict[str, Any] = {
        "id": credential.id,
        "rawId": b64url_encode(credential.raw_id),
        "response": response,
        "type": credential.type,
    }
    if credential.authenticator_attachment:
        encoded["authenticatorAttachment"] = credential.authenticator_attachment
    return encoded


def encode_attestation(credential: AttestationCredential) -> dict[str, Any]:
    response: dict[str, Any] = {
        "attestationObject": b64url_encode(credential.attestation_object),
        "clientDataJSON": b64url_encode(credential.client_data_json),
    }
    if credential.transports:
        response["transports"] = list(credential.transports)
    encoded: dict[str, Any] = {
        "id": credential.id,
        "rawId": b64url_encode(credential.raw_id),
        "response": response,
        "type": credential.type,
    }
    if credential.authenticator_attachment:
        encoded["authenticatorAttachment"] = credential.authenticator_attachment
    return encoded


class PasskeyHandler:
    def __init__(self, provider: CredentialProvider | None = None) -> None:
        self.provider = provider or UnavailableCredentialProvider()

    @staticmethod
    def detect(response: FlowResponse, fallback_flow_id: str | None) -> PasskeyCeremonyState | None:
        challenge = response.passkey_challenge
        creation_options = response.passkey_creation_options
        if not challenge and not creation_options:
            return None
        flow_id = response.flow_id or fallback_flow_id
        if not flow_id:
            return None
        return PasskeyCeremonyState(
            flow_id=flow_id,
            action_id="submit",
            challenge=challenge,
            creation_options=creation_options,
        )

    async def perform(self, ceremony: PasskeyCeremonyState) -> dict[str, str]:
        """Run the credential ceremony and return the step inputs to submit."""
        if not self.provider.is_supported():
            raise CredentialUnsupportedError()

        kind = "registration" if ceremony.is_registration else "authentication"
        try:
            options = ceremony.options()
            if ceremony.is_registration:
                credential = await self.provider.create_credential(decode_creation_options(options))
            else:
                credential = await self.provider.get_credential(decode_request_options(options))
        except FlowError:
            raise
        except Exception as error:
            LOGGER.warning("Passkey %s failed: %s", kind, error)
            raise CredentialCeremonyError(f"Passkey {kind} failed: {error}") from error

        if credential is None:
            raise CredentialCeremonyError(f"No credential returned from passkey {kind}.")

        if isinstance(credential, AttestationCredential):
            encoded = encode_attestation(credential)
            return {
                "credentialId": encoded["id"],
                "attestationObject": encoded["response"]["attestationObject"],
                "clientDataJSON": encoded["response"]["clientDataJSON"],
            }

        encoded = encode_assertion(credential)
        inputs = {
            "credentialId": encoded["id"],
            "authenticatorData": encoded["response"]["authenticatorData"],
            "clientDataJSON": encoded["response"]["clientDataJSON"],
            "signature": encoded["response"]["signature"],
        }
        if "userHandle" in encoded["response"]:
            inputs["userHandle"] = encoded["response"]["userHandle"]
        return inputs
