"""
CRM sync route: records widget conversion events against a HubSpot contact
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from schemas.crm import CrmContactRequest, CrmContactResponse
from services.crm_service import HubSpotService, get_crm_service

from core.exceptions import InputError, JewelryStudioError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["crm"])


@router.options("/create-hubspot-contact")
async def crm_preflight():
    return Response(status_code=200)


@router.post("/create-hubspot-contact", response_model=CrmContactResponse)
async def create_hubspot_contact(request: Request, crm_service: HubSpotService = Depends(get_crm_service)):
    """
    Upsert the contact for this email and append a note for the action.

    Only the counter matching ``conversionTrigger`` is incremented on existing contacts.
    """
    try:
        try:
            payload = CrmContactRequest(**(await request.json()))
        except (ValidationError, ValueError, TypeError) as e:
            raise InputError("A valid email is required", details={"reason": str(e)[:200]}) from e

        result = await crm_service.sync_contact(
            email=payload.email,
            session_data=payload.sessionData,
            conversion_trigger=payload.conversionTrigger,
            image_url=payload.imageUrl,
            action_details=payload.actionDetails,
        )
        return CrmContactResponse(**result)

    except JewelryStudioError as e:
        logger.error(f"HubSpot sync failed ({e.status_code}): {e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_payload())
