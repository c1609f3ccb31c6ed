"""System and transparency endpoints for the stakechat API."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from stakechat.core.settings import settings
from stakechat.services.contract_wallet import ContractWalletVerifier, get_contract_wallet_verifier
from stakechat.services.stake import StakeVerifier, get_stake_verifier

router = APIRouter(prefix="/system", tags=["system", "transparency"])


def get_stake_verifier_dep() -> StakeVerifier:
    """Get StakeVerifier dependency for dependency injection."""
    return get_stake_verifier()


def get_contract_wallet_verifier_dep() -> ContractWalletVerifier:
    return get_contract_wallet_verifier()


StakeVerifierDep = Annotated[StakeVerifier, Depends(get_stake_verifier_dep)]
ContractWalletDep = Annotated[ContractWalletVerifier, Depends(get_contract_wallet_verifier_dep)]


@router.get("/config")
async def get_public_config(
    stake_verifier: StakeVerifierDep,
    contract_wallets: ContractWalletDep,
) -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes secrets, API keys and connection strings. The stake allow-list
    is included so operators can audit every wallet that bypasses the live
    stake lookup.

    Args:
        stake_verifier: Stake verifier holding the effective stake config
        contract_wallets: EIP-1271 verifier, reported as enabled or not

    Returns:
        Dictionary containing app metadata, signature mode, stake policy and
        rate limits
    """
    stake_config = stake_verifier.config
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "jwt_algorithm": settings.jwt_algorithm,
            "session_token_expire_days": settings.session_token_expire_days,
            "debug": settings.debug,
        },
        "signatures": {
            "mode": "permissive" if settings.allow_signer_mismatch else "strict",
            "contract_wallets_enabled": contract_wallets.enabled,
        },
        "stake": {
            "provider": stake_config.provider,
            "min_stake": str(stake_config.min_stake),
            "subnet_id": stake_config.subnet_id,
            "token_decimals": stake_config.token_decimals,
            "allowlist": list(stake_verifier.allowlist),
            "cookie_revalidate": settings.stake_cookie_revalidate,
        },
        "rate_limits": {
            "backend": settings.rate_limit_backend,
            "wallet": {
                "limit": settings.rate_limit,
                "window_seconds": settings.rate_window_seconds,
            },
            "anonymous": {
                "limit": settings.anonymous_rate_limit,
                "window_seconds": settings.anonymous_window_seconds,
            },
        },
    }
