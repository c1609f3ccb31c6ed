"""Tests for system and transparency endpoints."""

from fastapi import status
from fastapi.testclient import TestClient

from stakechat.core.settings import settings


def test_system_config(client: TestClient) -> None:
    """Test system configuration endpoint."""
    r = client.get("/api/v1/system/config")
    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert "app" in data and "stake" in data and "rate_limits" in data
    assert data["signatures"]["mode"] == "strict"
    assert data["rate_limits"]["anonymous"]["limit"] == settings.anonymous_rate_limit
    assert data["rate_limits"]["wallet"]["window_seconds"] == settings.rate_window_seconds
    assert data["stake"]["min_stake"] == str(settings.min_stake)
    assert isinstance(data["stake"]["allowlist"], list)


def test_system_config_hides_secrets(client: TestClient) -> None:
    """Secrets and API keys never appear in the public config."""
    body = client.get("/api/v1/system/config").text
    assert settings.session_secret not in body
    assert "api_key" not in body.lower()
