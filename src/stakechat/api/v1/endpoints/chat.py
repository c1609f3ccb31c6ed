# src/stakechat/api/v1/endpoints/chat.py
"""Chat endpoint gated by wallet authentication, stake and rate limits."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response

from stakechat.api.v1.dependencies import (
    BearerTokenDep,
    ChatClientDep,
    ClientIpDep,
    PolicyDep,
    StakeCookieDep,
    apply_cookie_action,
)
from stakechat.schemas.auth import ErrorResponse
from stakechat.schemas.chat import ChatRequest, ChatResponse
from stakechat.services.authorization import Credentials

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

PRIVILEGED_FEATURES = frozenset({"image"})


@router.post(
    "",
    response_model=ChatResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def chat(
    payload: ChatRequest,
    response: Response,
    policy: PolicyDep,
    chat_client: ChatClientDep,
    client_ip: ClientIpDep,
    bearer_token: BearerTokenDep,
    stake_cookie: StakeCookieDep,
) -> ChatResponse:
    """Authorize the caller and forward the turn to the chat completion API.

    Args:
        payload: Chat turn plus optional wallet credentials or session token
        response: Outgoing response, used for the stake cookie
        policy: Request authorization policy
        chat_client: Downstream chat completion client
        client_ip: Network address of the caller
        bearer_token: Session token from the ``Authorization`` header, if any
        stake_cookie: Previously issued stake cookie, if any

    Returns:
        Assistant reply with the caller's address and stake state
    """
    credentials = Credentials(
        wallet_address=payload.wallet_address,
        signature=payload.signature,
        message=payload.message,
        token=payload.token or bearer_token,
    )
    decision = await policy.authorize(
        credentials,
        client_ip=client_ip,
        stake_cookie=stake_cookie,
        require_stake=payload.feature in PRIVILEGED_FEATURES,
    )
    apply_cookie_action(response, decision.cookie_action, decision.cookie_value)
    logger.info(
        "Chat request allowed: access=%s feature=%s",
        decision.access.value,
        payload.feature,
    )

    answer = await chat_client.complete(
        payload.text,
        [turn.model_dump() for turn in payload.history],
        elevated=decision.privileged and payload.feature in PRIVILEGED_FEATURES,
    )
    return ChatResponse(
        answer=answer,
        address=decision.address,
        staked=decision.staked,
        token=decision.session_token,
    )
