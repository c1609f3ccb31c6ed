# src/stakechat/services/authorization.py
"""Request authorization policy.

Combines signature recovery, contract-wallet verification, session tokens,
stake cookies, live stake lookups and rate limits into one decision per
request::

    session token valid              -> AUTHENTICATED(token address)
    session token invalid            -> 401 INVALID_SESSION
    wallet + signature + message     -> recovery cascade, then EIP-1271
    partial credentials              -> 401 AUTHENTICATION_REQUIRED
    no credentials                   -> ANONYMOUS

    ANONYMOUS     -> limit by network address (429 ANONYMOUS_RATE_LIMIT_EXCEEDED)
    UNSTAKED      -> limit by wallet address (429 RATE_LIMIT_EXCEEDED)
    STAKED        -> allowed without limits, privileged features unlocked

Denials are raised as :class:`~stakechat.core.errors.AuthError` subclasses;
allowed requests return an :class:`AuthorizationDecision`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from stakechat.core.errors import (
    AuthReason,
    InvalidCredentialFormat,
    RateLimitExceeded,
    SessionExpiredOrForged,
    SignatureMismatch,
    StakeRequired,
)
from stakechat.core.security import mask, normalize_address
from stakechat.core.settings import settings
from stakechat.services.contract_wallet import (
    ContractWalletVerifier,
    get_contract_wallet_verifier,
)
from stakechat.services.rate_limit import (
    RateLimitDecision,
    RateLimiter,
    get_anonymous_rate_limiter,
    get_wallet_rate_limiter,
)
from stakechat.services.session import (
    SessionTokenService,
    StakeCookieService,
    get_session_token_service,
    get_stake_cookie_service,
)
from stakechat.services.signature import (
    Recovered,
    SignatureRecoveryService,
    get_signature_service,
)
from stakechat.services.stake import StakeVerifier, get_stake_verifier

logger = logging.getLogger(__name__)


class AccessLevel(str, Enum):
    """Access tier reached by an allowed request."""

    ANONYMOUS = "anonymous"
    UNSTAKED = "unstaked"
    STAKED = "staked"


class CookieAction(str, Enum):
    """What the response must do with the client's stake cookie."""

    KEEP = "keep"
    SET = "set"
    CLEAR = "clear"


@dataclass(frozen=True)
class Credentials:
    """Credential fields taken from an inbound request."""

    wallet_address: str | None = None
    signature: str | None = None
    message: str | None = None
    token: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.wallet_address or self.signature or self.message or self.token)


@dataclass(frozen=True)
class Authentication:
    """A wallet identity proven by a session token or a signature."""

    address: str
    method: str
    session_token: str | None = None


@dataclass(frozen=True)
class StakeResolution:
    """Stake status plus the cookie instruction for the response."""

    staked: bool
    cookie_action: CookieAction = CookieAction.KEEP
    cookie_value: str | None = None


@dataclass(frozen=True)
class AuthorizationDecision:
    """Outcome of an allowed request."""

    access: AccessLevel
    address: str | None = None
    session_token: str | None = None
    cookie_action: CookieAction = CookieAction.KEEP
    cookie_value: str | None = None
    rate_limit: RateLimitDecision | None = None

    @property
    def staked(self) -> bool:
        return self.access is AccessLevel.STAKED

    @property
    def privileged(self) -> bool:
        """True when elevated features (e.g. image generation) may be used."""
        return self.access is AccessLevel.STAKED


class AuthorizationPolicy:
    """Single authorization path shared by every endpoint."""

    def __init__(
        self,
        *,
        signatures: SignatureRecoveryService,
        contract_wallets: ContractWalletVerifier,
        stakes: StakeVerifier,
        sessions: SessionTokenService,
        stake_cookies: StakeCookieService,
        wallet_limiter: RateLimiter,
        anonymous_limiter: RateLimiter,
        allow_signer_mismatch: bool | None = None,
        revalidate_stake_cookie: bool | None = None,
    ) -> None:
        self._signatures = signatures
        self._contract_wallets = contract_wallets
        self._stakes = stakes
        self._sessions = sessions
        self._stake_cookies = stake_cookies
        self._wallet_limiter = wallet_limiter
        self._anonymous_limiter = anonymous_limiter
        self.allow_signer_mismatch = (
            settings.allow_signer_mismatch if allow_signer_mismatch is None else allow_signer_mismatch
        )
        self.revalidate_stake_cookie = (
            settings.stake_cookie_revalidate
            if revalidate_stake_cookie is None
            else revalidate_stake_cookie
        )

    # --- Authentication -------------------------------------------------------------
    async def authenticate(self, credentials: Credentials) -> Authentication | None:
        """Return the proven identity, or None for an anonymous request.

        Raises:
            SessionExpiredOrForged: For an invalid or expired session token.
            InvalidCredentialFormat: For partial or malformed credentials.
            SignatureMismatch: When no path proves control of the wallet.
        """
        if credentials.token:
            return self.authenticate_session(credentials.token)
        if credentials.is_empty:
            return None
        return await self.authenticate_signature(
            credentials.wallet_address,
            credentials.message,
            credentials.signature,
        )

    def authenticate_session(self, token: str) -> Authentication:
        claims = self._sessions.verify(token)
        return Authentication(address=claims.address, method="session")

    async def authenticate_signature(
        self,
        wallet_address: str | None,
        message: str | None,
        signature: str | None,
    ) -> Authentication:
        """Prove control of ``wallet_address`` and issue a session token."""
        if not (wallet_address and signature and message):
            raise InvalidCredentialFormat(AuthReason.AUTHENTICATION_REQUIRED)
        try:
            claimed = normalize_address(wallet_address)
        except ValueError as err:
            raise InvalidCredentialFormat() from err

        outcome = self._signatures.recover(claimed, message, signature)
        if isinstance(outcome, Recovered) and outcome.matches_claim:
            return self._authenticated(claimed, f"signature:{outcome.stage}")

        if await self._contract_wallets.verify(claimed, message, signature):
            return self._authenticated(claimed, "contract_wallet")

        if isinstance(outcome, Recovered):
            if self.allow_signer_mismatch:
                logger.warning(
                    "Permissive signer mode (reduced security): claimed %s, authenticating as %s",
                    claimed,
                    outcome.address,
                )
                return self._authenticated(outcome.address, f"signature:{outcome.stage}")
            logger.warning("Rejected signature: signer %s is not %s", outcome.address, claimed)
            raise SignatureMismatch(AuthReason.SIGNER_MISMATCH)

        logger.info("Rejected signature %s for %s", mask(signature), claimed)
        raise SignatureMismatch()

    def _authenticated(self, address: str, method: str) -> Authentication:
        logger.info("Authenticated %s via %s", address, method)
        return Authentication(
            address=address,
            method=method,
            session_token=self._sessions.issue(address),
        )

    # --- Stake ----------------------------------------------------------------------
    async def resolve_stake(self, address: str, stake_cookie: str | None) -> StakeResolution:
        """Return the live stake decision for ``address``.

        A valid cookie is only a hint: in strict mode the stake verifier is
        queried again and a cookie that no longer holds is cleared.
        """
        cookie_valid = False
        if stake_cookie:
            try:
                claims = self._stake_cookies.verify(stake_cookie)
            except SessionExpiredOrForged:
                logger.info("Discarding invalid stake cookie for %s", address)
            else:
                if claims.address == address:
                    cookie_valid = True
                else:
                    logger.warning(
                        "Stake cookie bound to %s presented by %s; treating as forged",
                        claims.address,
                        address,
                    )

        if cookie_valid and not self.revalidate_stake_cookie:
            return StakeResolution(staked=True)

        if await self._stakes.is_staked(address):
            if cookie_valid:
                return StakeResolution(staked=True)
            return StakeResolution(
                staked=True,
                cookie_action=CookieAction.SET,
                cookie_value=self._stake_cookies.issue(address),
            )

        if stake_cookie:
            return StakeResolution(staked=False, cookie_action=CookieAction.CLEAR)
        return StakeResolution(staked=False)

    # --- Full decision --------------------------------------------------------------
    async def authorize(
        self,
        credentials: Credentials,
        *,
        client_ip: str,
        stake_cookie: str | None = None,
        require_stake: bool = False,
    ) -> AuthorizationDecision:
        """Decide whether a request may reach the downstream pipeline.

        Args:
            credentials: Credential fields from the request.
            client_ip: Network address used to key anonymous rate limits.
            stake_cookie: Previously issued stake cookie, if any.
            require_stake: True for privileged features that need STAKED.
        """
        auth = await self.authenticate(credentials)

        if auth is None:
            if require_stake:
                raise InvalidCredentialFormat(AuthReason.AUTHENTICATION_REQUIRED)
            limit = self._anonymous_limiter.check(client_ip)
            if not limit.allowed:
                raise RateLimitExceeded(
                    AuthReason.ANONYMOUS_RATE_LIMIT_EXCEEDED,
                    retry_after_seconds=limit.retry_after_seconds,
                )
            return AuthorizationDecision(access=AccessLevel.ANONYMOUS, rate_limit=limit)

        stake = await self.resolve_stake(auth.address, stake_cookie)
        if stake.staked:
            return AuthorizationDecision(
                access=AccessLevel.STAKED,
                address=auth.address,
                session_token=auth.session_token,
                cookie_action=stake.cookie_action,
                cookie_value=stake.cookie_value,
            )

        clear_cookie = stake.cookie_action is CookieAction.CLEAR
        if require_stake:
            raise StakeRequired(clear_stake_cookie=clear_cookie)

        limit = self._wallet_limiter.check(auth.address)
        if not limit.allowed:
            raise RateLimitExceeded(
                clear_stake_cookie=clear_cookie,
                retry_after_seconds=limit.retry_after_seconds,
            )
        return AuthorizationDecision(
            access=AccessLevel.UNSTAKED,
            address=auth.address,
            session_token=auth.session_token,
            cookie_action=stake.cookie_action,
            rate_limit=limit,
        )


def get_authorization_policy() -> AuthorizationPolicy:
    """Return a policy wired to the shared service instances."""
    return AuthorizationPolicy(
        signatures=get_signature_service(),
        contract_wallets=get_contract_wallet_verifier(),
        stakes=get_stake_verifier(),
        sessions=get_session_token_service(),
        stake_cookies=get_stake_cookie_service(),
        wallet_limiter=get_wallet_rate_limiter(),
        anonymous_limiter=get_anonymous_rate_limiter(),
    )
