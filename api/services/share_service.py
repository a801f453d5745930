"""
Conversation sharing: persist a snapshot of a chat under a share ID and read it back until it expires.
"""
import json
import logging
import random
import string
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from core.config import settings
from core.exceptions import InputError, ShareExpired, ShareNotFound
from services.artifact_store import ArtifactStore, get_artifact_store

logger = logging.getLogger(__name__)

DEFAULT_SHARE_TITLE = "Jewelry Design Conversation"
_BASE36 = string.digits + string.ascii_lowercase


def generate_share_id() -> str:
    """``share_<epoch ms>_<9 base36 chars>``"""
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"share_{int(time.time() * 1000)}_{suffix}"


def _isoformat(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_message(message: Dict[str, Any], default_timestamp: str) -> Dict[str, Any]:
    return {
        "role": message.get("role"),
        "content": message.get("content"),
        "timestamp": message.get("timestamp") or default_timestamp,
        "imageUrl": message.get("imageUrl"),
        "metadata": message.get("metadata"),
    }


class ShareService:
    """Stores shared conversations as JSON documents in the artifact store"""

    def __init__(
        self,
        store: ArtifactStore,
        base_url: str,
        ttl_days: int = 30,
        prefix: str = "shared-conversations",
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.base_url = base_url
        self.ttl = timedelta(days=ttl_days)
        self.prefix = prefix.strip("/")
        self._now = now

    def _key(self, share_id: str) -> str:
        return f"{self.prefix}/{share_id}.json"

    def share_url(self, share_id: str) -> str:
        return f"{self.base_url}?share={share_id}"

    async def create_share(self, conversation_history: List[Dict[str, Any]], title: Optional[str] = None) -> Dict[str, Any]:
        """
        Snapshot a conversation and return its share ID, URL and expiry.

        Raises:
            InputError: history is not a list of message objects
            StorageError: the snapshot could not be written
        """
        if not isinstance(conversation_history, list) or not all(isinstance(m, dict) for m in conversation_history):
            raise InputError("Invalid conversation history")

        now = self._now()
        created_at = _isoformat(now)
        share_id = generate_share_id()
        document = {
            "id": share_id,
            "title": title or DEFAULT_SHARE_TITLE,
            "messages": [normalize_message(m, created_at) for m in conversation_history],
            "createdAt": created_at,
            "expiresAt": _isoformat(now + self.ttl),
        }

        await self.store.put(json.dumps(document, indent=2).encode("utf-8"), self._key(share_id), "application/json")
        logger.info(f"Shared conversation {share_id} with {len(document['messages'])} messages")

        return {"shareId": share_id, "shareUrl": self.share_url(share_id), "expiresAt": document["expiresAt"]}

    async def get_share(self, share_id: str) -> Dict[str, Any]:
        """
        Load a shared conversation.

        Raises:
            ShareNotFound: no snapshot stored under this ID
            ShareExpired: the snapshot is past its expiry
        """
        if not share_id or "/" in share_id or ".." in share_id:
            raise ShareNotFound("Shared conversation not found or expired", details={"shareId": share_id})

        stored = await self.store.get(self._key(share_id))
        if stored is None:
            raise ShareNotFound("Shared conversation not found or expired", details={"shareId": share_id})

        try:
            document = json.loads(stored.data.decode("utf-8"))
            expires_at = _parse_timestamp(document["expiresAt"])
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Corrupt shared conversation {share_id}: {e}")
            raise ShareNotFound("Shared conversation not found or expired", details={"shareId": share_id}) from e

        if self._now() > expires_at:
            raise ShareExpired("Shared conversation has expired", details={"shareId": share_id})

        return document


_share_service: Optional[ShareService] = None


def get_share_service() -> ShareService:
    global _share_service
    if _share_service is None:
        _share_service = ShareService(
            store=get_artifact_store(),
            base_url=settings.share_base_url,
            ttl_days=settings.share_ttl_days,
            prefix=settings.share_prefix,
        )
    return _share_service
