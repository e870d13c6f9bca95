from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "blackswan-mcp-server"}


def test_health_does_not_touch_the_source(client: TestClient) -> None:
    client.app.state.source.fail_with("firestore down")

    for _ in range(100):
        assert client.get("/health").status_code == 200
    assert client.app.state.source.calls == []


def test_responses_carry_security_headers(client: TestClient) -> None:
    response = client.get("/health")
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["referrer-policy"] == "no-referrer"


def test_cors_allows_any_origin(client: TestClient) -> None:
    response = client.get("/health", headers={"Origin": "https://dashboard.example.com"})
    assert response.headers["access-control-allow-origin"] == "*"
