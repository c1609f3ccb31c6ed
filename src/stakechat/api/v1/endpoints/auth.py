# src/stakechat/api/v1/endpoints/auth.py
"""Wallet authentication endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response

from stakechat.api.v1.dependencies import PolicyDep, StakeCookieDep, apply_cookie_action
from stakechat.core.errors import InternalFault
from stakechat.schemas.auth import AuthRequest, AuthResponse, ErrorResponse

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post(
    "",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def authenticate_wallet(
    payload: AuthRequest,
    response: Response,
    policy: PolicyDep,
    stake_cookie: StakeCookieDep,
) -> AuthResponse:
    """Verify a wallet signature and issue a session token.

    The signature runs through the recovery cascade and, failing that, the
    EIP-1271 contract-wallet check. The stake cookie is set when stake is
    newly confirmed and cleared when a presented cookie no longer holds.
    """
    auth = await policy.authenticate_signature(
        payload.wallet_address,
        payload.message,
        payload.signature,
    )
    stake = await policy.resolve_stake(auth.address, stake_cookie)
    apply_cookie_action(response, stake.cookie_action, stake.cookie_value)

    if auth.session_token is None:
        raise InternalFault()
    return AuthResponse(address=auth.address, token=auth.session_token, staked=stake.staked)
