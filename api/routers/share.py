"""
Conversation sharing routes
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from schemas.share import CreateShareRequest, CreateShareResponse, GetShareResponse
from services.share_service import ShareService, get_share_service

from core.exceptions import InputError, JewelryStudioError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["share"])


@router.options("/share")
async def share_preflight():
    return Response(status_code=200)


@router.post("/share", response_model=CreateShareResponse)
async def create_share(request: Request, share_service: ShareService = Depends(get_share_service)):
    """Store a snapshot of the conversation and return a share link valid for 30 days"""
    try:
        try:
            payload = CreateShareRequest(**(await request.json()))
        except (ValidationError, ValueError, TypeError) as e:
            raise InputError("Invalid conversation history", details={"reason": str(e)[:200]}) from e

        result = await share_service.create_share(payload.conversationHistory, payload.title)
        return CreateShareResponse(**result)
    except JewelryStudioError as e:
        logger.error(f"Failed to share conversation: {e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_payload())


@router.get("/share", response_model=GetShareResponse)
async def get_share(
    shareId: Optional[str] = Query(None, description="Share ID from the share link"),
    share_service: ShareService = Depends(get_share_service),
):
    """Load a shared conversation (404 when unknown, 410 once expired)"""
    try:
        if not shareId:
            raise InputError("Share ID required")
        conversation = await share_service.get_share(shareId)
        return GetShareResponse(conversation=conversation)
    except JewelryStudioError as e:
        logger.warning(f"Shared conversation {shareId} unavailable: {e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_payload())
