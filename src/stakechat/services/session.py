# src/stakechat/services/session.py
"""Signed session tokens and stake-status cookies.

Both credentials are HS256 JWTs signed with ``SESSION_SECRET`` but carry a
distinct ``typ`` claim so one can never be presented in place of the other.
There is no server-side revocation list: a credential stays valid until its
``exp`` claim passes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Final

from jose import JWTError, jwt

from stakechat.core.errors import SessionExpiredOrForged
from stakechat.core.security import normalize_address
from stakechat.core.settings import settings

logger = logging.getLogger(__name__)

SESSION_TOKEN_TYPE: Final[str] = "session"
STAKE_COOKIE_TYPE: Final[str] = "stake"


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token."""

    address: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class StakeClaims:
    """Verified contents of a stake-status cookie."""

    address: str
    staked: bool
    issued_at: datetime
    expires_at: datetime


class _SignedCredentialService:
    """Shared JWT issue/verify logic for one credential type."""

    token_type: str = ""

    def __init__(
        self,
        secret: str | None = None,
        *,
        ttl_seconds: int,
        algorithm: str | None = None,
    ) -> None:
        self._secret = secret or settings.session_secret
        self._algorithm = algorithm or settings.jwt_algorithm
        self.ttl_seconds = ttl_seconds

    def _encode(
        self,
        address: str,
        extra_claims: dict[str, Any] | None = None,
        *,
        now: datetime | None = None,
    ) -> str:
        issued_at = now or datetime.now(UTC)
        to_encode: dict[str, Any] = {
            "sub": normalize_address(address),
            "typ": self.token_type,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + timedelta(seconds=self.ttl_seconds)).timestamp()),
        }
        if extra_claims:
            to_encode.update(extra_claims)
        encoded: str = jwt.encode(to_encode, self._secret, algorithm=self._algorithm)
        return encoded

    def _decode(self, token: str) -> dict[str, Any]:
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
            )
        except JWTError as err:
            logger.info("Rejected %s credential: %s", self.token_type, err)
            raise SessionExpiredOrForged() from err

        if payload.get("typ") != self.token_type:
            logger.warning("Rejected credential with unexpected type %r", payload.get("typ"))
            raise SessionExpiredOrForged()
        try:
            payload["sub"] = normalize_address(str(payload.get("sub", "")))
            int(payload["iat"])
            int(payload["exp"])
        except (KeyError, TypeError, ValueError) as err:
            raise SessionExpiredOrForged() from err
        return payload


def _timestamp(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value), UTC)


class SessionTokenService(_SignedCredentialService):
    """Issue and verify session tokens that stand in for a fresh signature."""

    token_type = SESSION_TOKEN_TYPE

    def __init__(self, secret: str | None = None, *, ttl_seconds: int | None = None) -> None:
        super().__init__(secret, ttl_seconds=ttl_seconds or settings.session_token_ttl_seconds)

    def issue(self, address: str, *, now: datetime | None = None) -> str:
        """Return a session token bound to ``address``."""
        return self._encode(address, now=now)

    def verify(self, token: str) -> SessionClaims:
        """Return the claims of a valid token.

        Raises:
            SessionExpiredOrForged: If the signature, type or expiry is invalid.
        """
        payload = self._decode(token)
        return SessionClaims(
            address=payload["sub"],
            issued_at=_timestamp(payload["iat"]),
            expires_at=_timestamp(payload["exp"]),
        )


class StakeCookieService(_SignedCredentialService):
    """Issue and verify cookies caching a positive stake decision.

    A cookie is a hint only: absence or invalidity means "unknown", never
    "not staked".
    """

    token_type = STAKE_COOKIE_TYPE

    def __init__(self, secret: str | None = None, *, ttl_seconds: int | None = None) -> None:
        super().__init__(secret, ttl_seconds=ttl_seconds or settings.stake_cookie_max_age_seconds)

    def issue(self, address: str, *, now: datetime | None = None) -> str:
        """Return a cookie value asserting that ``address`` is staked."""
        return self._encode(address, {"staked": True}, now=now)

    def verify(self, cookie: str) -> StakeClaims:
        """Return the claims of a valid cookie.

        Raises:
            SessionExpiredOrForged: If the signature, type or expiry is invalid,
                or the cookie does not assert ``staked``.
        """
        payload = self._decode(cookie)
        if payload.get("staked") is not True:
            raise SessionExpiredOrForged()
        return StakeClaims(
            address=payload["sub"],
            staked=True,
            issued_at=_timestamp(payload["iat"]),
            expires_at=_timestamp(payload["exp"]),
        )


def get_session_token_service() -> SessionTokenService:
    """Return a session token service instance."""
    return SessionTokenService()


def get_stake_cookie_service() -> StakeCookieService:
    """Return a stake cookie service instance."""
    return StakeCookieService()
