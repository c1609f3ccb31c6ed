"""Error taxonomy for the authorization core.

Every error carries a stable ``reason`` code that is returned to clients as
``{"error": reason}`` together with ``status_code``. Raw exception messages are
never rendered to clients.
"""

from __future__ import annotations

from enum import Enum


class AuthReason(str, Enum):
    """Reason codes surfaced to API clients."""

    INVALID_CREDENTIAL_FORMAT = "INVALID_CREDENTIAL_FORMAT"
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    SIGNER_MISMATCH = "SIGNER_MISMATCH"
    INVALID_SESSION = "INVALID_SESSION"
    STAKE_REQUIRED = "STAKE_REQUIRED"
    STAKE_CHECK_UNAVAILABLE = "STAKE_CHECK_UNAVAILABLE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    ANONYMOUS_RATE_LIMIT_EXCEEDED = "ANONYMOUS_RATE_LIMIT_EXCEEDED"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AuthError(RuntimeError):
    """Base exception for authorization failures.

    Attributes:
        reason: Stable reason code returned to the client.
        status_code: HTTP status used when rendering the error.
        clear_stake_cookie: True when the client must discard its stake cookie.
    """

    default_reason: AuthReason = AuthReason.INTERNAL_ERROR
    status_code: int = 500

    def __init__(
        self,
        reason: AuthReason | None = None,
        *,
        clear_stake_cookie: bool = False,
    ) -> None:
        self.reason = reason or self.default_reason
        self.clear_stake_cookie = clear_stake_cookie
        super().__init__(self.reason.value)


class InvalidCredentialFormat(AuthError):
    """Raised when credentials are missing pieces or are malformed."""

    default_reason = AuthReason.INVALID_CREDENTIAL_FORMAT
    status_code = 401


class SignatureMismatch(AuthError):
    """Raised when no signature path proves control of the claimed wallet."""

    default_reason = AuthReason.INVALID_SIGNATURE
    status_code = 401


class SessionExpiredOrForged(AuthError):
    """Raised for session tokens or stake cookies that fail verification."""

    default_reason = AuthReason.INVALID_SESSION
    status_code = 401


class StakeRequired(AuthError):
    """Raised when a privileged feature is requested without confirmed stake."""

    default_reason = AuthReason.STAKE_REQUIRED
    status_code = 403


class StakeCheckUnavailable(AuthError):
    """Raised by stake providers on network or data failures.

    Never rendered directly: the stake verifier converts it to "not staked".
    """

    default_reason = AuthReason.STAKE_CHECK_UNAVAILABLE
    status_code = 500


class RateLimitExceeded(AuthError):
    """Raised when a caller exceeds its request window."""

    default_reason = AuthReason.RATE_LIMIT_EXCEEDED
    status_code = 429

    def __init__(
        self,
        reason: AuthReason | None = None,
        *,
        clear_stake_cookie: bool = False,
        retry_after_seconds: int | None = None,
    ) -> None:
        super().__init__(reason, clear_stake_cookie=clear_stake_cookie)
        self.retry_after_seconds = retry_after_seconds


class InternalFault(AuthError):
    """Raised for unexpected failures inside the authorization core."""

    default_reason = AuthReason.INTERNAL_ERROR
    status_code = 500


class UpstreamError(InternalFault):
    """Raised when the downstream chat collaborator fails."""

    default_reason = AuthReason.UPSTREAM_FAILURE
