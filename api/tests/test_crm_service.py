"""
Tests for the HubSpot contact sync: first-contact seeding, per-trigger increments and notes.

HubSpotService._request is mocked, so each test scripts the (status, body) HubSpot returns.
"""
from unittest.mock import ANY, AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.exceptions import CrmError
from routers.crm import router
from services.crm_service import HubSpotService, get_crm_service, increment_properties, seed_properties


@pytest.fixture
def hubspot():
    return HubSpotService(access_token="pat-test-token", base_url="https://api.hubapi.test")


def calls_by_method(mock_request):
    return [(c.args[0], c.args[1], c.kwargs) for c in mock_request.await_args_list]


class TestPropertyHelpers:
    def test_seed_uses_non_negative_integer_hints(self):
        properties = seed_properties(
            "jane@goldsmith-studio.com",
            {"imagesGenerated": 3, "refinementsMade": "2", "downloadsCount": -4, "sharesCount": "lots"},
            "image_generated",
            "2024-06-01T00:00:00Z",
        )
        assert properties["images_generated_count"] == 3
        assert properties["refinements_made_count"] == 2
        assert properties["downloads_count"] == 0
        assert properties["designs_shared_count"] == 0
        assert properties["chatbot_sessions_count"] == 1
        assert properties["conversion_trigger"] == "image_generated"

    def test_increment_touches_only_trigger_counter(self):
        properties = increment_properties(
            {"downloads_count": "1", "images_generated_count": "9"}, "download", "2024-06-01T00:00:00Z"
        )
        assert properties == {
            "last_chat_date": "2024-06-01T00:00:00Z",
            "conversion_trigger": "download",
            "downloads_count": 2,
        }

    def test_unknown_trigger_increments_nothing(self):
        properties = increment_properties({}, "newsletter", "2024-06-01T00:00:00Z")
        assert set(properties) == {"last_chat_date", "conversion_trigger"}


class TestHubSpotService:
    @pytest.mark.asyncio
    async def test_first_contact_created_from_session_hints(self, hubspot):
        hubspot._request = AsyncMock(side_effect=[(404, {}), (201, {"id": "101"}), (201, {"id": "n-1"})])

        result = await hubspot.sync_contact(
            "jane@goldsmith-studio.com",
            {"sessionsCount": 1, "imagesGenerated": 2, "firstJewelryType": "ring"},
            "image_generated",
            image_url="https://cdn.example.com/ring.png",
        )

        assert result == {"contactId": "101", "created": True, "noteId": "n-1"}
        lookup, create, note = calls_by_method(hubspot._request)
        assert lookup[:2] == ("GET", "/crm/v3/objects/contacts/jane@goldsmith-studio.com")
        assert lookup[2]["params"]["idProperty"] == "email"
        assert create[:2] == ("POST", "/crm/v3/objects/contacts")
        created = create[2]["payload"]["properties"]
        assert created["email"] == "jane@goldsmith-studio.com"
        assert created["images_generated_count"] == 2
        assert created["first_jewelry_interest"] == "ring"
        assert note[:2] == ("POST", "/crm/v3/objects/notes")

    @pytest.mark.asyncio
    async def test_existing_contact_increments_single_counter(self, hubspot):
        existing = {"id": "55", "properties": {"images_generated_count": "4", "downloads_count": "1"}}
        hubspot._request = AsyncMock(side_effect=[(200, existing), (200, {"id": "55"}), (201, {"id": "n-2"})])

        result = await hubspot.sync_contact(
            "jane@goldsmith-studio.com", {"imagesGenerated": 40, "downloadsCount": 40}, "download"
        )

        assert result["created"] is False
        _, update, _ = calls_by_method(hubspot._request)
        assert update[:2] == ("PATCH", "/crm/v3/objects/contacts/55")
        assert update[2]["payload"]["properties"] == {
            "last_chat_date": ANY,
            "conversion_trigger": "download",
            "downloads_count": 2,
        }

    @pytest.mark.asyncio
    async def test_note_associated_to_contact(self, hubspot):
        hubspot._request = AsyncMock(side_effect=[(200, {"id": "55", "properties": {}}), (200, {}), (201, {"id": "n"})])

        await hubspot.sync_contact(
            "jane@goldsmith-studio.com", {}, "share", image_url="https://cdn.example.com/ring.png", action_details={"via": "link"}
        )

        note_payload = hubspot._request.await_args_list[-1].kwargs["payload"]
        assert "share" in note_payload["properties"]["hs_note_body"]
        assert "https://cdn.example.com/ring.png" in note_payload["properties"]["hs_note_body"]
        assert "via: link" in note_payload["properties"]["hs_note_body"]
        association = note_payload["associations"][0]
        assert association["to"] == {"id": "55"}
        assert association["types"][0]["associationTypeId"] == 202

    @pytest.mark.asyncio
    async def test_lookup_escapes_reserved_characters_in_email(self, hubspot):
        hubspot._request = AsyncMock(return_value=(404, {}))

        assert await hubspot.find_contact("jane?ref=ad#x/y@goldsmith-studio.com") is None

        method, path = hubspot._request.await_args.args
        assert method == "GET"
        assert path == "/crm/v3/objects/contacts/jane%3Fref%3Dad%23x%2Fy@goldsmith-studio.com"

    @pytest.mark.asyncio
    async def test_hubspot_error_raises_crm_error(self, hubspot):
        hubspot._request = AsyncMock(side_effect=[(404, {}), (400, {"message": "Property values were not valid"})])

        with pytest.raises(CrmError) as exc_info:
            await hubspot.sync_contact("jane@goldsmith-studio.com", {}, "session_start")

        assert exc_info.value.details["status"] == 400

    @pytest.mark.asyncio
    async def test_missing_token_raises_crm_error(self):
        with pytest.raises(CrmError):
            await HubSpotService(access_token="").sync_contact("jane@goldsmith-studio.com", {}, "session_start")


class TestCrmEndpoint:
    @pytest.fixture
    def crm(self):
        service = MagicMock()
        service.sync_contact = AsyncMock(return_value={"contactId": "101", "created": True, "noteId": "n-1"})
        return service

    @pytest.fixture
    def client(self, crm):
        app = FastAPI()
        app.include_router(router)
        app.dependency_overrides[get_crm_service] = lambda: crm
        return TestClient(app)

    def test_sync_contact(self, client, crm):
        response = client.post(
            "/api/create-hubspot-contact",
            json={"email": "jane@goldsmith-studio.com", "sessionData": {"imagesGenerated": 1}, "conversionTrigger": "download"},
        )

        assert response.status_code == 200
        assert response.json()["contactId"] == "101"
        kwargs = crm.sync_contact.await_args.kwargs
        assert kwargs["email"] == "jane@goldsmith-studio.com"
        assert kwargs["conversion_trigger"] == "download"

    def test_invalid_email_is_400(self, client, crm):
        response = client.post("/api/create-hubspot-contact", json={"email": "not-an-email"})

        assert response.status_code == 400
        crm.sync_contact.assert_not_called()

    def test_crm_failure_is_502(self, client, crm):
        crm.sync_contact = AsyncMock(side_effect=CrmError("HubSpot contact creation failed"))
        response = client.post("/api/create-hubspot-contact", json={"email": "jane@goldsmith-studio.com"})

        assert response.status_code == 502
        assert response.json()["error"] == "CRM sync failed"
