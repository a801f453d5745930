"""
Pydantic schemas for the usage analytics endpoint
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class TrackEventRequest(BaseModel):
    """Single widget event"""

    eventType: str = Field(..., min_length=1, max_length=100)
    data: Optional[Dict[str, Any]] = Field(default_factory=dict, description="Event data, e.g. {'brand': 'acme'}")


class TrackEventResponse(BaseModel):
    success: bool = True
    totalImagesGenerated: int


class GlobalStats(BaseModel):
    totalImagesGenerated: int = 0
    totalSessions: int = 0
    totalDownloads: int = 0
    totalShares: int = 0
    totalRefinements: int = 0


class AnalyticsSummaryResponse(BaseModel):
    success: bool = True
    global_: GlobalStats = Field(alias="global")
    today: Dict[str, Any]
    brands: Dict[str, Any]
    lastUpdated: Optional[str] = None

    class Config:
        populate_by_name = True
