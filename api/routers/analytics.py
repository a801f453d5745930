"""
Usage analytics routes: event tracking and counter summary
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from schemas.analytics import AnalyticsSummaryResponse, TrackEventRequest, TrackEventResponse
from services.analytics_service import AnalyticsService, get_analytics_service

from core.exceptions import InputError, JewelryStudioError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["analytics"])


@router.options("/analytics")
async def analytics_preflight():
    return Response(status_code=200)


@router.get("/analytics", response_model=AnalyticsSummaryResponse)
async def get_analytics(analytics: AnalyticsService = Depends(get_analytics_service)):
    """Global, today's and per-brand counters"""
    try:
        return AnalyticsSummaryResponse(**await analytics.get_summary())
    except JewelryStudioError as e:
        logger.error(f"Failed to read analytics: {e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_payload())


@router.post("/analytics", response_model=TrackEventResponse)
async def track_event(request: Request, analytics: AnalyticsService = Depends(get_analytics_service)):
    """Increment the counters for one widget event"""
    try:
        try:
            payload = TrackEventRequest(**(await request.json()))
        except (ValidationError, ValueError, TypeError) as e:
            raise InputError("eventType is required", details={"reason": str(e)[:200]}) from e

        stats = await analytics.track_event(payload.eventType, payload.data)
        return TrackEventResponse(totalImagesGenerated=stats.get("totalImagesGenerated", 0))
    except JewelryStudioError as e:
        logger.error(f"Analytics tracking failed: {e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_payload())
