"""
HubSpot CRM sync for widget conversion events.

Contacts are keyed by email. The first event creates the contact, seeded from the
client's session counters; every later event increments only the counter that
matches its trigger, so repeated calls from the widget never double count.
Each call also appends a note describing the action to the contact's timeline.
"""
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import aiohttp

from core.config import settings
from core.exceptions import CrmError

logger = logging.getLogger(__name__)

# HubSpot-defined association: note -> contact
NOTE_TO_CONTACT_ASSOCIATION_ID = 202

TRIGGER_COUNTERS = {
    "image_generated": "images_generated_count",
    "refinement": "refinements_made_count",
    "download": "downloads_count",
    "share": "designs_shared_count",
    "session_start": "chatbot_sessions_count",
}

# contact property -> sessionData hint
SESSION_HINTS = {
    "chatbot_sessions_count": "sessionsCount",
    "images_generated_count": "imagesGenerated",
    "refinements_made_count": "refinementsMade",
    "downloads_count": "downloadsCount",
    "designs_shared_count": "sharesCount",
}

CONTACT_PROPERTIES = list(SESSION_HINTS) + ["first_jewelry_interest", "last_chat_date", "conversion_trigger"]


def _hint_count(value: Any) -> int:
    """Client counters are untrusted hints: only non-negative integers are used."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def _property_count(value: Any) -> int:
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError):
        return 0


def seed_properties(email: str, session_data: Dict[str, Any], trigger: str, timestamp: str) -> Dict[str, Any]:
    properties: Dict[str, Any] = {"email": email}
    for prop, hint in SESSION_HINTS.items():
        properties[prop] = _hint_count(session_data.get(hint))
    properties["chatbot_sessions_count"] = max(properties["chatbot_sessions_count"], 1)
    if session_data.get("firstJewelryType"):
        properties["first_jewelry_interest"] = str(session_data["firstJewelryType"])
    properties["last_chat_date"] = timestamp
    properties["conversion_trigger"] = trigger
    return properties


def increment_properties(existing: Dict[str, Any], trigger: str, timestamp: str) -> Dict[str, Any]:
    properties: Dict[str, Any] = {"last_chat_date": timestamp, "conversion_trigger": trigger}
    counter = TRIGGER_COUNTERS.get(trigger)
    if counter:
        properties[counter] = _property_count(existing.get(counter)) + 1
    return properties


def note_body(trigger: str, image_url: Optional[str], action_details: Optional[Dict[str, Any]]) -> str:
    lines = [f"Jewelry chatbot action: {trigger}"]
    if image_url:
        lines.append(f"Design: {image_url}")
    for key, value in (action_details or {}).items():
        lines.append(f"{key}: {value}")
    return "<br>".join(lines)


class HubSpotService:
    """Minimal HubSpot CRM v3 client for contact upsert and timeline notes"""

    def __init__(self, access_token: Optional[str] = None, base_url: Optional[str] = None, timeout: Optional[int] = None):
        self.access_token = access_token if access_token is not None else settings.hubspot_access_token
        self.base_url = (base_url or settings.hubspot_base_url).rstrip("/")
        self.timeout = timeout or settings.hubspot_timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

        self.usage_stats = {"total_requests": 0, "successful_requests": 0, "failed_requests": 0}

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Dict[str, Any]]:
        """Authenticated call; returns (status, json body). Transport failures raise CrmError."""
        if not self.access_token:
            raise CrmError("HUBSPOT_ACCESS_TOKEN not set")

        session = await self._get_session()
        headers = {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}
        self.usage_stats["total_requests"] += 1
        start_time = time.time()

        try:
            async with session.request(
                method, f"{self.base_url}{path}", json=payload, params=params, headers=headers
            ) as response:
                text = await response.text()
                status = response.status
            body = json.loads(text) if text else {}
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            self.usage_stats["failed_requests"] += 1
            logger.error(f"HubSpot {method} {path} failed: {e}")
            raise CrmError(f"HubSpot request failed: {e}") from e

        if status < 400 or status == 404:
            self.usage_stats["successful_requests"] += 1
        else:
            self.usage_stats["failed_requests"] += 1
        logger.info(f"HubSpot {method} {path} -> {status} in {time.time() - start_time:.2f}s")
        return status, body or {}

    @staticmethod
    def _raise_for(status: int, body: Dict[str, Any], action: str):
        if status >= 400:
            raise CrmError(
                f"HubSpot {action} failed: {body.get('message', status)}",
                details={"status": status, "category": body.get("category")},
            )

    async def find_contact(self, email: str) -> Optional[Dict[str, Any]]:
        status, body = await self._request(
            "GET",
            f"/crm/v3/objects/contacts/{quote(email, safe='@')}",
            params={"idProperty": "email", "properties": ",".join(CONTACT_PROPERTIES)},
        )
        if status == 404:
            return None
        self._raise_for(status, body, "contact lookup")
        return body

    async def create_note(self, contact_id: str, body_html: str, timestamp: str) -> Optional[str]:
        payload = {
            "properties": {"hs_timestamp": timestamp, "hs_note_body": body_html},
            "associations": [
                {
                    "to": {"id": contact_id},
                    "types": [
                        {"associationCategory": "HUBSPOT_DEFINED", "associationTypeId": NOTE_TO_CONTACT_ASSOCIATION_ID}
                    ],
                }
            ],
        }
        status, body = await self._request("POST", "/crm/v3/objects/notes", payload=payload)
        self._raise_for(status, body, "note creation")
        return body.get("id")

    async def sync_contact(
        self,
        email: str,
        session_data: Optional[Dict[str, Any]],
        conversion_trigger: str,
        image_url: Optional[str] = None,
        action_details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Upsert the contact for one conversion event and append an action note.

        Returns:
            {"contactId", "created", "noteId"}

        Raises:
            CrmError: any HubSpot call failed
        """
        timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        existing = await self.find_contact(email)

        if existing is None:
            properties = seed_properties(email, session_data or {}, conversion_trigger, timestamp)
            status, body = await self._request("POST", "/crm/v3/objects/contacts", payload={"properties": properties})
            self._raise_for(status, body, "contact creation")
            contact_id = body.get("id")
            created = True
            logger.info(f"Created HubSpot contact {contact_id} ({conversion_trigger})")
        else:
            contact_id = existing.get("id")
            properties = increment_properties(existing.get("properties") or {}, conversion_trigger, timestamp)
            status, body = await self._request(
                "PATCH", f"/crm/v3/objects/contacts/{contact_id}", payload={"properties": properties}
            )
            self._raise_for(status, body, "contact update")
            created = False
            logger.info(f"Updated HubSpot contact {contact_id} ({conversion_trigger})")

        note_id = await self.create_note(contact_id, note_body(conversion_trigger, image_url, action_details), timestamp)
        return {"contactId": contact_id, "created": created, "noteId": note_id}

    def get_usage_stats(self) -> Dict[str, Any]:
        total = self.usage_stats["total_requests"]
        return {
            **self.usage_stats,
            "success_rate": (self.usage_stats["successful_requests"] / total * 100) if total > 0 else 0,
        }


hubspot_service = HubSpotService()


def get_crm_service() -> HubSpotService:
    return hubspot_service
