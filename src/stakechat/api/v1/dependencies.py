"""Shared API dependencies for authorization and stake cookies."""

from typing import Annotated

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from stakechat.core.settings import settings
from stakechat.services.authorization import (
    AuthorizationPolicy,
    CookieAction,
    get_authorization_policy,
)
from stakechat.services.chat import ChatCompletionClient, get_chat_client

# Bearer tokens are optional: anonymous callers send none
bearer_scheme = HTTPBearer(auto_error=False)

ANONYMOUS_CLIENT = "anonymous"


def get_policy_dep() -> AuthorizationPolicy:
    return get_authorization_policy()


def get_chat_client_dep() -> ChatCompletionClient:
    return get_chat_client()


def get_client_ip(request: Request) -> str:
    """Return the network address used to key anonymous rate limits.

    Args:
        request: Incoming request

    Returns:
        First ``X-Forwarded-For`` hop when proxies are trusted, otherwise the
        socket peer address
    """
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return ANONYMOUS_CLIENT


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str | None:
    if credentials is None:
        return None
    return credentials.credentials


def get_stake_cookie(request: Request) -> str | None:
    return request.cookies.get(settings.stake_cookie_name) or None


def set_stake_cookie(response: Response, value: str) -> None:
    response.set_cookie(
        key=settings.stake_cookie_name,
        value=value,
        max_age=settings.stake_cookie_max_age_seconds,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )


def clear_stake_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.stake_cookie_name,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )


def apply_cookie_action(response: Response, action: CookieAction, value: str | None) -> None:
    """Write the stake cookie instruction from a decision onto ``response``."""
    if action is CookieAction.SET and value:
        set_stake_cookie(response, value)
    elif action is CookieAction.CLEAR:
        clear_stake_cookie(response)


PolicyDep = Annotated[AuthorizationPolicy, Depends(get_policy_dep)]
ChatClientDep = Annotated[ChatCompletionClient, Depends(get_chat_client_dep)]
ClientIpDep = Annotated[str, Depends(get_client_ip)]
BearerTokenDep = Annotated[str | None, Depends(get_bearer_token)]
StakeCookieDep = Annotated[str | None, Depends(get_stake_cookie)]
