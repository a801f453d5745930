"""
Usage analytics: global, daily, per-brand and daily-per-brand event counters kept in one JSON blob.
"""
import asyncio
import copy
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from core.config import settings
from core.exceptions import StorageError
from services.artifact_store import ArtifactStore, get_artifact_store

logger = logging.getLogger(__name__)

DEFAULT_BRAND = "default"

# event type -> (global key, daily key, brand key, daily-brand key)
EVENT_COUNTERS: Dict[str, tuple] = {
    "image_generated": ("totalImagesGenerated", "imagesGenerated", "totalImages", "images"),
    "session_start": ("totalSessions", "sessions", "totalSessions", "sessions"),
    "download": ("totalDownloads", "downloads", "totalDownloads", "downloads"),
    "share": ("totalShares", "shares", "totalShares", "shares"),
    "refinement": ("totalRefinements", "refinements", "totalRefinements", "refinements"),
}

GLOBAL_KEYS = [keys[0] for keys in EVENT_COUNTERS.values()]


def _isoformat(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def empty_daily_stats() -> Dict[str, Any]:
    stats: Dict[str, Any] = {keys[1]: 0 for keys in EVENT_COUNTERS.values()}
    stats["brands"] = {}
    return stats


def empty_brand_stats(timestamp: str) -> Dict[str, Any]:
    stats: Dict[str, Any] = {keys[2]: 0 for keys in EVENT_COUNTERS.values()}
    stats["firstUsed"] = timestamp
    stats["lastUsed"] = timestamp
    return stats


def initial_stats(timestamp: str, seed_images_generated: int = 0) -> Dict[str, Any]:
    stats: Dict[str, Any] = {key: 0 for key in GLOBAL_KEYS}
    stats["totalImagesGenerated"] = seed_images_generated
    stats["lastUpdated"] = timestamp
    stats["dailyStats"] = {}
    stats["brandStats"] = {}
    return stats


def apply_event(
    stats: Dict[str, Any],
    event_type: str,
    brand: str,
    now: datetime,
    retention_days: int = 90,
) -> Dict[str, Any]:
    """
    Apply one event to the stats document in place and return it.

    Unknown event types create the day/brand buckets and only touch ``lastUsed``.
    Daily buckets older than the retention window are dropped.
    """
    timestamp = _isoformat(now)
    today = now.date().isoformat()

    daily = stats.setdefault("dailyStats", {}).setdefault(today, empty_daily_stats())
    brand_stats = stats.setdefault("brandStats", {}).setdefault(brand, empty_brand_stats(timestamp))
    daily_brand = daily.setdefault("brands", {}).setdefault(
        brand, {keys[3]: 0 for keys in EVENT_COUNTERS.values()}
    )

    counters = EVENT_COUNTERS.get(event_type)
    if counters:
        global_key, daily_key, brand_key, daily_brand_key = counters
        stats[global_key] = stats.get(global_key, 0) + 1
        daily[daily_key] = daily.get(daily_key, 0) + 1
        brand_stats[brand_key] = brand_stats.get(brand_key, 0) + 1
        daily_brand[daily_brand_key] = daily_brand.get(daily_brand_key, 0) + 1
    else:
        logger.info(f"Ignoring unknown analytics event type: {event_type}")

    brand_stats["lastUsed"] = timestamp

    cutoff = (now.date() - timedelta(days=retention_days)).isoformat()
    for day in [d for d in stats["dailyStats"] if d < cutoff]:
        del stats["dailyStats"][day]

    return stats


class AnalyticsService:
    """Read-modify-write of the analytics blob, serialized by an in-process lock"""

    def __init__(
        self,
        store: ArtifactStore,
        key: str = "analytics/global-stats.json",
        retention_days: int = 90,
        seed_images_generated: int = 0,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.key = key
        self.retention_days = retention_days
        self.seed_images_generated = seed_images_generated
        self._now = now
        self._lock = asyncio.Lock()

    async def _load(self) -> Dict[str, Any]:
        stored = await self.store.get(self.key)
        if stored is None:
            stats = initial_stats(_isoformat(self._now()), self.seed_images_generated)
            await self._save(stats)
            return stats
        try:
            return json.loads(stored.data.decode("utf-8"))
        except ValueError as e:
            raise StorageError(f"Analytics blob is corrupt: {e}", details={"key": self.key}) from e

    async def _save(self, stats: Dict[str, Any]) -> None:
        await self.store.put(json.dumps(stats, indent=2).encode("utf-8"), self.key, "application/json")

    async def track_event(self, event_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Record one event and return the updated stats document."""
        brand = (data or {}).get("brand") or DEFAULT_BRAND
        async with self._lock:
            stats = await self._load()
            now = self._now()
            apply_event(stats, event_type, str(brand), now, self.retention_days)
            stats["lastUpdated"] = _isoformat(now)
            await self._save(stats)

        logger.info(f"Tracked analytics event {event_type} for brand {brand}")
        return stats

    async def get_summary(self) -> Dict[str, Any]:
        """Global totals, today's bucket, per-brand stats and the last update time."""
        async with self._lock:
            stats = copy.deepcopy(await self._load())

        today = self._now().date().isoformat()
        return {
            "global": {key: stats.get(key, 0) for key in GLOBAL_KEYS},
            "today": stats.get("dailyStats", {}).get(today) or empty_daily_stats(),
            "brands": stats.get("brandStats", {}),
            "lastUpdated": stats.get("lastUpdated"),
        }


_analytics_service: Optional[AnalyticsService] = None


def get_analytics_service() -> AnalyticsService:
    global _analytics_service
    if _analytics_service is None:
        _analytics_service = AnalyticsService(
            store=get_artifact_store(),
            key=settings.analytics_key,
            retention_days=settings.analytics_retention_days,
            seed_images_generated=settings.analytics_seed_images_generated,
        )
    return _analytics_service
