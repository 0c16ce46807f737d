from __future__ import annotations


class FlowError(RuntimeError):
    code = "flow_error"


class ConfigurationError(FlowError):
    code = "configuration_error"


class OAuthProviderError(FlowError):
    code = "oauth_provider_error"

    def __init__(self, error: str, description: str | None = None) -> None:
        message = f"OAuth provider returned {error}"
        if description:
            message = f"{message}: {description}"
        super().__init__(message)
        self.error = error
        self.description = description


class CsrfValidationError(FlowError):
    code = "csrf_validation_error"


class MissingFlowError(FlowError):
    code = "missing_flow"

    def __init__(self, message: str = "Invalid flow. Missing flowId.") -> None:
        super().__init__(message)


class FlowInvalidatedError(FlowError):
    code = "flow_invalidated"

    def __init__(self, message: str, failure_reason: str | None = None) -> None:
        super().__init__(message)
        self.failure_reason = failure_reason


class CredentialUnsupportedError(FlowError):
    code = "credential_unsupported"

    def __init__(self, message: str = "Passkeys are not supported on this host.") -> None:
        super().__init__(message)


class CredentialCeremonyError(FlowError):
    code = "credential_ceremony_failed"


class TransportError(FlowError):
    code = "transport_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class InvalidFlowResponseError(FlowError):
    code = "invalid_flow_response"


class InvalidTransitionError(FlowError):
    code = "invalid_transition"

    def __init__(self, state: str, event: str) -> None:
        super().__init__(f"Event {event} is not allowed in state {state}.")
        self.state = state
        self.event = event
