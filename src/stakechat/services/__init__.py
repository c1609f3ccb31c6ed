"""Business logic services for the stakechat application."""

from .authorization import AuthorizationPolicy
from .chat import ChatCompletionClient
from .contract_wallet import ContractWalletVerifier
from .rate_limit import RateLimiter
from .session import SessionTokenService, StakeCookieService
from .signature import SignatureRecoveryService
from .stake import StakeVerifier

__all__ = [
    "AuthorizationPolicy",
    "ChatCompletionClient",
    "ContractWalletVerifier",
    "RateLimiter",
    "SessionTokenService",
    "StakeCookieService",
    "SignatureRecoveryService",
    "StakeVerifier",
]
