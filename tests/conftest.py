# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Iterator

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from fastapi import FastAPI
from fastapi.testclient import TestClient

os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from stakechat.api.v1.dependencies import get_chat_client_dep, get_policy_dep
from stakechat.main import app as fastapi_app
from stakechat.services.authorization import AuthorizationPolicy
from stakechat.services.chat import ChatCompletionClient
from stakechat.services.contract_wallet import ContractWalletVerifier
from stakechat.services.rate_limit import MemoryCounterStore, RateLimiter
from stakechat.services.session import SessionTokenService, StakeCookieService
from stakechat.services.signature import SignatureRecoveryService

TEST_SECRET = "test-session-secret"
TEST_RATE_LIMIT = 3
TEST_WINDOW_SECONDS = 30 * 60


class FakeStakeVerifier:
    """Stake verifier answering from an in-memory set of staked wallets."""

    def __init__(self, staked: set[str] | None = None) -> None:
        self.staked = {address.lower() for address in staked or set()}
        self.calls: list[str] = []

    async def is_staked(self, address: str) -> bool:
        self.calls.append(address)
        return address.lower() in self.staked


def sign_message(account: LocalAccount, message: str) -> str:
    """Return the 0x-prefixed EIP-191 signature of ``message``."""
    signed = account.sign_message(encode_defunct(text=message))
    return "0x" + bytes(signed.signature).hex()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def signer() -> LocalAccount:
    """Return a fresh wallet key."""
    return Account.create()


@pytest.fixture()
def other_signer() -> LocalAccount:
    return Account.create()


@pytest.fixture()
def sign() -> Callable[[LocalAccount, str], str]:
    return sign_message


@pytest.fixture()
def stake_verifier() -> FakeStakeVerifier:
    return FakeStakeVerifier()


@pytest.fixture()
def contract_wallets(mocker):
    verifier = mocker.AsyncMock(spec=ContractWalletVerifier)
    verifier.verify.return_value = False
    return verifier


@pytest.fixture()
def session_tokens() -> SessionTokenService:
    return SessionTokenService(TEST_SECRET)


@pytest.fixture()
def stake_cookies() -> StakeCookieService:
    return StakeCookieService(TEST_SECRET)


@pytest.fixture()
def policy(
    stake_verifier: FakeStakeVerifier,
    contract_wallets,
    session_tokens: SessionTokenService,
    stake_cookies: StakeCookieService,
) -> AuthorizationPolicy:
    """Build a strict-mode policy with isolated rate-limit counters."""
    store = MemoryCounterStore()
    return AuthorizationPolicy(
        signatures=SignatureRecoveryService(),
        contract_wallets=contract_wallets,
        stakes=stake_verifier,  # type: ignore[arg-type]
        sessions=session_tokens,
        stake_cookies=stake_cookies,
        wallet_limiter=RateLimiter(
            "wallet",
            limit=TEST_RATE_LIMIT,
            window_seconds=TEST_WINDOW_SECONDS,
            store=store,
        ),
        anonymous_limiter=RateLimiter(
            "anonymous",
            limit=TEST_RATE_LIMIT,
            window_seconds=TEST_WINDOW_SECONDS,
            store=store,
        ),
        allow_signer_mismatch=False,
        revalidate_stake_cookie=True,
    )


@pytest.fixture()
def chat_client(mocker):
    client = mocker.AsyncMock(spec=ChatCompletionClient)
    client.complete.return_value = "Hello from the model"
    return client


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    policy: AuthorizationPolicy,
    chat_client,
) -> Iterator[None]:
    app.dependency_overrides[get_policy_dep] = lambda: policy
    app.dependency_overrides[get_chat_client_dep] = lambda: chat_client
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_policy_dep, None)
        app.dependency_overrides.pop(get_chat_client_dep, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
