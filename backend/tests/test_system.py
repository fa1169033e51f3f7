from fastapi.testclient import TestClient
from elderpoints.main import app

client = TestClient(app)

def test_health_ok():
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert "request_id" in data

def test_health_echoes_request_id():
    r = client.get("/health", headers={"x-request-id": "abc-123"})
    assert r.json()["request_id"] == "abc-123"
    assert r.headers["X-Request-ID"] == "abc-123"

def test_version_ok():
    r = client.get("/version")
    assert r.status_code == 200
    data = r.json()
    assert "version" in data and "git_sha" in data
    assert data["name"] == "elderpoints-api"

def test_log_level_follows_setting(monkeypatch):
    import logging
    from elderpoints.config import settings
    from elderpoints.logging_setup import configure_logging

    monkeypatch.setattr(settings, "log_level", "warning")
    configure_logging()
    assert logging.getLogger().level == logging.WARNING

    monkeypatch.setattr(settings, "log_level", "not-a-level")
    configure_logging()
    assert logging.getLogger().level == logging.INFO
