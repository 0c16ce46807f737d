from __future__ import annotations

import logging

LOGGER = logging.getLogger("signin.flow")
APP_VERSION = "0.1.0"

FLOW_EXECUTE_PATH = "/flow/execute"
AUTHENTICATION_FLOW_TYPE = "AUTHENTICATION"

DEFAULT_STORAGE_NAMESPACE = "signin"
FLOW_ID_KEY = "flow_id"
AUTH_ID_KEY = "auth_id"
CONSUMED_CODE_KEY = "consumed_code"
CSRF_STATE_KEY_PREFIX = "oauth_state"

# Milliseconds a minted CSRF state stays valid.
CSRF_STATE_TTL_MS = 600_000

OAUTH_QUERY_PARAMS = ("code", "nonce", "state", "error", "error_description")
FLOW_QUERY_PARAMS = ("flowId", "authId", "applicationId")

DEFAULT_FAILURE_MESSAGE = "Authentication flow failed. Please try again."
