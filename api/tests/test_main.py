"""
Tests for the application-level endpoints in main.py.
"""
from fastapi.testclient import TestClient

from main import app

client = TestClient(app)


def test_health_check():
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Request-ID" in response.headers


def test_root_lists_endpoints_and_video_queue():
    body = client.get("/").json()

    assert body["endpoints"]["chat"] == "/api/chat"
    assert body["videoQueue"]["state"] == "idle"
    assert body["videoQueue"]["depth"] == 0


def test_chat_rejects_get():
    assert client.get("/api/chat").status_code == 405
