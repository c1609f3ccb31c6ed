# tests/test_health.py
from fastapi.testclient import TestClient


def test_health_check(client: TestClient) -> None:
    """Verify that the health endpoint reports ok."""
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_root_responds(client: TestClient) -> None:
    """Verify that the root endpoint describes the API."""
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["docs"] == "/docs"
