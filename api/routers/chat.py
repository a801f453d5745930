"""
Chat API routes for the jewelry design widget
"""
import json
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from schemas.chat import ChatRequest, ChatResponse
from services.chat_orchestrator import ChatOrchestrator, ReferenceUpload, get_chat_orchestrator
from starlette.datastructures import UploadFile

from core.config import settings
from core.exceptions import InputError, JewelryStudioError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["chat"])

REFERENCE_FIELD = "referenceImage"
FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def credential_presence() -> Dict[str, bool]:
    """Which provider credentials are configured (never their values)"""
    return {
        "hasOpenAIKey": bool(settings.openai_api_key),
        "hasGoogleCredentials": bool(settings.google_ai_api_key or settings.google_use_vertexai),
        "hasReplicateToken": bool(settings.replicate_api_token),
        "artifactStore": settings.artifact_store_backend,
    }


async def parse_chat_request(request: Request) -> Tuple[ChatRequest, Optional[ReferenceUpload]]:
    """
    Read a chat turn from either a JSON body or a multipart form.

    Multipart forms carry conversationHistory/baseImageData as JSON strings and may
    include a ``referenceImage`` file part.
    """
    content_type = request.headers.get("content-type", "")
    upload: Optional[ReferenceUpload] = None

    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        fields: Dict[str, Any] = {key: value for key, value in form.items() if not isinstance(value, UploadFile)}
        file = form.get(REFERENCE_FIELD)
        if isinstance(file, UploadFile):
            data = await file.read()
            if data:
                upload = ReferenceUpload(data=data, content_type=file.content_type, filename=file.filename)
    else:
        try:
            fields = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InputError("Request body is not valid JSON") from e
        if not isinstance(fields, dict):
            raise InputError("Request body must be a JSON object")

    try:
        chat_request = ChatRequest(**fields)
    except ValidationError as e:
        raise InputError(
            "Invalid chat request",
            details={"errors": [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]},
        ) from e

    return chat_request, upload


@router.options("/chat")
async def chat_preflight():
    return Response(status_code=200)


@router.post("/chat", response_model=ChatResponse)
async def chat(request: Request, orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator)):
    """
    Handle one chat turn: consult the design assistant and, when asked for,
    generate a jewelry image or video.
    """
    try:
        chat_request, upload = await parse_chat_request(request)
        return await orchestrator.handle_turn(chat_request, upload)

    except JewelryStudioError as e:
        logger.error(f"Chat turn failed ({e.status_code}): {e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_payload())
    except Exception as e:
        logger.error(f"Unexpected error in chat endpoint: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(e), "details": credential_presence()},
        )
