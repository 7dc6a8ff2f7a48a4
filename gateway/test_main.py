"""
HTTP 엔드포인트 검증 (TestClient + 가짜 completion 서비스).
"""
import json
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from gateway.config import GatewayConfig
from gateway.main import create_app

TOOL_BODY = {
    "model": "gpt-4o-mini",
    "choices": [{
        "message": {
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": "call_abc",
                "type": "function",
                "function": {"name": "createText", "arguments": json.dumps({"x": 1, "y": 2, "text": "Hi", "fontSize": 32})},
            }],
        },
        "finish_reason": "tool_calls",
    }],
}


def _client(body=TOOL_BODY, status=200, **overrides) -> TestClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=body)

    config = GatewayConfig(api_key="test-key", admin_token="secret", **overrides)
    return TestClient(create_app(config, transport=httpx.MockTransport(handler)))


def test_health():
    client = _client()
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/api/health").status_code == 200


def test_command_success_shape():
    r = _client().post("/api/command", json={"prompt": "write Hi", "user_id": "u1"})
    assert r.status_code == 200
    data = r.json()
    assert data["kind"] == "success"
    assert data["success"] is True
    assert data["tool_calls"] == [
        {"id": "call_abc", "name": "createText", "arguments": {"x": 1.0, "y": 2.0, "text": "Hi", "fontSize": 32.0, "color": "#000000"}},
    ]


def test_command_rate_limited_has_retry_after():
    client = _client(max_requests_per_window=1)
    assert client.post("/api/command", json={"prompt": "write Hi", "user_id": "u1"}).status_code == 200
    r = client.post("/api/command", json={"prompt": "write Hi", "user_id": "u1"})
    assert r.status_code == 429
    assert r.json()["error"] == "RATE_LIMIT_EXCEEDED"
    assert int(r.headers["Retry-After"]) >= 1


def test_command_no_action():
    body = {"choices": [{"message": {"role": "assistant", "content": "Sorry"}, "finish_reason": "stop"}]}
    r = _client(body=body).post("/api/command", json={"prompt": "hello", "user_id": "u1"})
    assert r.status_code == 200
    assert r.json()["error"] == "NO_TOOL_CALLS"
    assert r.json()["success"] is False


def test_command_transport_error():
    r = _client(body={"error": "down"}, status=500).post("/api/command", json={"prompt": "x", "user_id": "u1"})
    assert r.status_code == 502
    assert r.json()["kind"] == "transport_error"
    assert r.json()["status_code"] == 500


def test_blank_prompt_is_400():
    r = _client().post("/api/command", json={"prompt": " ", "user_id": "u1"})
    assert r.status_code == 400


def test_missing_user_is_422():
    r = _client().post("/api/command", json={"prompt": "draw"})
    assert r.status_code == 422


def test_rate_limit_status_and_admin_reset():
    client = _client(max_requests_per_window=2)
    assert client.get("/api/rate-limit/u1").json() == {"remaining": 2, "reset_in": 0.0}
    client.post("/api/command", json={"prompt": "write Hi", "user_id": "u1"})
    status = client.get("/api/rate-limit/u1").json()
    assert status["remaining"] == 1
    assert 0 < status["reset_in"] <= 60

    assert client.post("/api/admin/rate-limit/u1/reset").status_code == 403
    assert client.post("/api/admin/rate-limit/u1/reset", headers={"X-Admin-Token": "wrong"}).status_code == 403
    r = client.post("/api/admin/rate-limit/u1/reset", headers={"X-Admin-Token": "secret"})
    assert r.status_code == 200
    assert r.json()["remaining"] == 2


def test_admin_reset_disabled_without_token():
    config = GatewayConfig(api_key="k")
    client = TestClient(create_app(config))
    assert client.post("/api/admin/rate-limit/u1/reset", headers={"X-Admin-Token": "x"}).status_code == 503


def test_list_tools():
    data = _client().get("/api/tools").json()
    names = [t["function"]["name"] for t in data["tools"]]
    assert "createRectangle" in names and "clearCanvas" in names
    assert "layout" in data["categories"]


def test_config_from_env(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("MAX_REQUESTS_PER_WINDOW", "5")
    monkeypatch.setenv("REQUEST_TIMEOUT_MS", "20000")
    monkeypatch.setenv("OPENAI_MODEL", "auto")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")
    config = GatewayConfig.from_env(tmp_path / ".env")
    assert config.max_requests_per_window == 5
    assert config.deadline_seconds == 20.0
    assert config.model == "auto"
    assert config.cors_origins == ["http://a.test", "http://b.test"]


def test_config_rejects_invalid_values(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("MAX_REQUESTS_PER_WINDOW", "0")
    with pytest.raises(ValueError):
        GatewayConfig.from_env(tmp_path / ".env")


@pytest.mark.parametrize("base_url", [
    "http://localhost:notaport/v1",
    "http://[::1/v1",
    "ftp://example.com/v1",
    "not a url",
])
def test_config_rejects_broken_base_url(base_url):
    """포트·호스트가 깨졌거나 http(s)가 아닌 주소는 시작할 때 바로 거부."""
    with pytest.raises(ValueError):
        GatewayConfig(api_key="k", base_url=base_url)


def test_config_normalizes_base_url():
    """끝의 슬래시는 떼고 저장."""
    assert GatewayConfig(base_url="https://proxy.test/v1/").base_url == "https://proxy.test/v1"
