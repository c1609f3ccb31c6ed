# tests/v1/test_chat.py
"""Tests for the stake-gated chat endpoint."""

from fastapi import status
from fastapi.testclient import TestClient

from stakechat.core.errors import UpstreamError
from stakechat.core.settings import settings

MESSAGE = "Sign in to stakechat\nNonce: 9"


def _signed_body(account, sign, **extra) -> dict[str, object]:
    return {
        "text": "hello",
        "walletAddress": account.address,
        "signature": sign(account, MESSAGE),
        "message": MESSAGE,
        **extra,
    }


def test_anonymous_fourth_request_is_rate_limited(client: TestClient) -> None:
    headers = {"X-Forwarded-For": "203.0.113.50"}
    for _ in range(3):
        response = client.post("/api/v1/chat", json={"text": "hi"}, headers=headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["answer"] == "Hello from the model"

    response = client.post("/api/v1/chat", json={"text": "hi"}, headers=headers)

    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert response.json() == {"error": "ANONYMOUS_RATE_LIMIT_EXCEEDED"}
    assert int(response.headers["retry-after"]) > 0


def test_forwarded_for_uses_first_hop(client: TestClient) -> None:
    for _ in range(3):
        client.post("/api/v1/chat", json={"text": "hi"}, headers={"X-Forwarded-For": "198.51.100.3, 10.0.0.1"})

    response = client.post(
        "/api/v1/chat",
        json={"text": "hi"},
        headers={"X-Forwarded-For": "198.51.100.3, 10.0.0.2"},
    )

    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS


def test_missing_text_is_rejected(client: TestClient) -> None:
    response = client.post("/api/v1/chat", json={"history": []})

    assert response.status_code == 422


def test_signed_request_returns_session_token(client: TestClient, signer, sign, chat_client) -> None:
    response = client.post("/api/v1/chat", json=_signed_body(signer, sign))

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["address"] == signer.address.lower()
    assert data["staked"] is False
    assert data["token"]
    chat_client.complete.assert_awaited_once_with("hello", [], elevated=False)


def test_session_token_in_bearer_header(client: TestClient, signer, session_tokens) -> None:
    token = session_tokens.issue(signer.address)

    response = client.post(
        "/api/v1/chat",
        json={"text": "hi again"},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["address"] == signer.address.lower()


def test_invalid_session_token_is_rejected(client: TestClient) -> None:
    response = client.post("/api/v1/chat", json={"text": "hi", "token": "not-a-token"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"error": "INVALID_SESSION"}


def test_unstaked_wallet_is_rate_limited(client: TestClient, signer, sign) -> None:
    body = _signed_body(signer, sign)
    for _ in range(3):
        assert client.post("/api/v1/chat", json=body).status_code == status.HTTP_200_OK

    response = client.post("/api/v1/chat", json=body)

    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert response.json() == {"error": "RATE_LIMIT_EXCEEDED"}


def test_image_feature_requires_stake(client: TestClient, signer, sign, chat_client) -> None:
    response = client.post("/api/v1/chat", json=_signed_body(signer, sign, feature="image"))

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json() == {"error": "STAKE_REQUIRED"}
    chat_client.complete.assert_not_awaited()


def test_image_feature_for_anonymous_requires_authentication(client: TestClient) -> None:
    response = client.post("/api/v1/chat", json={"text": "draw", "feature": "image"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"error": "AUTHENTICATION_REQUIRED"}


def test_staked_wallet_unlocks_image_feature(
    client: TestClient, signer, sign, stake_verifier, chat_client
) -> None:
    stake_verifier.staked.add(signer.address.lower())

    response = client.post("/api/v1/chat", json=_signed_body(signer, sign, feature="image"))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["staked"] is True
    assert response.cookies.get(settings.stake_cookie_name)
    chat_client.complete.assert_awaited_once_with("hello", [], elevated=True)


def test_stale_stake_cookie_is_denied_and_cleared(client: TestClient, signer, sign, stake_cookies) -> None:
    client.cookies.set(settings.stake_cookie_name, stake_cookies.issue(signer.address))

    response = client.post("/api/v1/chat", json=_signed_body(signer, sign, feature="image"))

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json() == {"error": "STAKE_REQUIRED"}
    assert "max-age=0" in response.headers["set-cookie"].lower()


def test_history_is_forwarded(client: TestClient, chat_client) -> None:
    history = [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "reply"},
    ]

    response = client.post("/api/v1/chat", json={"text": "second", "history": history})

    assert response.status_code == status.HTTP_200_OK
    chat_client.complete.assert_awaited_once_with("second", history, elevated=False)


def test_upstream_failure_is_reported(client: TestClient, chat_client) -> None:
    chat_client.complete.side_effect = UpstreamError()

    response = client.post("/api/v1/chat", json={"text": "hi"})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"error": "UPSTREAM_FAILURE"}
