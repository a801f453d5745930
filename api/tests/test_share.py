"""
Tests for conversation sharing: service semantics and the /api/share routes.
"""
import re
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.exceptions import InputError, ShareExpired, ShareNotFound
from routers.share import router
from services.share_service import ShareService, generate_share_id, get_share_service

SHARE_ID_RE = re.compile(r"^share_\d{13}_[0-9a-z]{9}$")


class MutableNow:
    def __init__(self):
        self.value = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.value


@pytest.fixture
def now():
    return MutableNow()


@pytest.fixture
def share_service(local_store, now):
    return ShareService(store=local_store, base_url="https://shop.example.com/home", ttl_days=30, now=now)


HISTORY = [
    {"role": "user", "content": "Create a diamond ring"},
    {
        "role": "assistant",
        "content": "Here it is!",
        "imageUrl": "https://cdn.example.com/jewelry-catalog-1.png",
        "metadata": {"provider": "imagen"},
        "timestamp": "2024-06-01T11:59:00Z",
    },
]


class TestShareService:
    def test_share_id_format(self):
        assert SHARE_ID_RE.match(generate_share_id())

    @pytest.mark.asyncio
    async def test_create_and_read_back(self, share_service):
        created = await share_service.create_share(HISTORY, "My ring")

        assert SHARE_ID_RE.match(created["shareId"])
        assert created["shareUrl"] == f"https://shop.example.com/home?share={created['shareId']}"
        assert created["expiresAt"] == "2024-07-01T12:00:00Z"

        conversation = await share_service.get_share(created["shareId"])
        assert conversation["title"] == "My ring"
        assert conversation["createdAt"] == "2024-06-01T12:00:00Z"
        user, assistant = conversation["messages"]
        assert user == {
            "role": "user",
            "content": "Create a diamond ring",
            "timestamp": "2024-06-01T12:00:00Z",
            "imageUrl": None,
            "metadata": None,
        }
        assert assistant["imageUrl"] == "https://cdn.example.com/jewelry-catalog-1.png"
        assert assistant["timestamp"] == "2024-06-01T11:59:00Z"

    @pytest.mark.asyncio
    async def test_stored_under_shared_conversations_prefix(self, share_service, local_store):
        created = await share_service.create_share(HISTORY)
        assert (local_store.root / "shared-conversations" / f"{created['shareId']}.json").is_file()

    @pytest.mark.asyncio
    async def test_default_title(self, share_service):
        created = await share_service.create_share(HISTORY)
        conversation = await share_service.get_share(created["shareId"])
        assert conversation["title"] == "Jewelry Design Conversation"

    @pytest.mark.asyncio
    async def test_expired_share(self, share_service, now):
        created = await share_service.create_share(HISTORY)
        now.value += timedelta(days=31)

        with pytest.raises(ShareExpired):
            await share_service.get_share(created["shareId"])

    @pytest.mark.asyncio
    async def test_missing_share(self, share_service):
        with pytest.raises(ShareNotFound):
            await share_service.get_share("share_1718000000000_abcdefghi")

    @pytest.mark.asyncio
    async def test_invalid_history_rejected(self, share_service):
        with pytest.raises(InputError):
            await share_service.create_share("not a list")


class TestShareEndpoints:
    @pytest.fixture
    def client(self, share_service):
        app = FastAPI()
        app.include_router(router)
        app.dependency_overrides[get_share_service] = lambda: share_service
        return TestClient(app)

    def test_create_then_get(self, client):
        created = client.post("/api/share", json={"conversationHistory": HISTORY, "title": "Ring"})
        assert created.status_code == 200
        body = created.json()
        assert body["success"] is True

        fetched = client.get("/api/share", params={"shareId": body["shareId"]})
        assert fetched.status_code == 200
        assert fetched.json()["conversation"]["id"] == body["shareId"]

    def test_get_without_share_id_is_400(self, client):
        assert client.get("/api/share").status_code == 400

    def test_unknown_share_is_404(self, client):
        response = client.get("/api/share", params={"shareId": "share_1_missing00"})
        assert response.status_code == 404
        assert response.json()["error"] == "Shared conversation not found or expired"

    def test_expired_share_is_410(self, client, now):
        share_id = client.post("/api/share", json={"conversationHistory": HISTORY}).json()["shareId"]
        now.value += timedelta(days=30, seconds=1)

        assert client.get("/api/share", params={"shareId": share_id}).status_code == 410

    def test_missing_history_is_400(self, client):
        assert client.post("/api/share", json={"title": "no history"}).status_code == 400
