"""
Pydantic schemas for the chat endpoint
"""
import json
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class MessageRole(str, Enum):
    """Conversation turn roles accepted from the widget"""

    user = "user"
    assistant = "assistant"


class ContentType(str, Enum):
    image = "image"
    video = "video"


def _decode_json_field(value: Any, field_name: str) -> Any:
    """Multipart forms send structured fields as JSON strings."""
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"{field_name} is not valid JSON: {e.msg}") from e
    return value


class ChatRequest(BaseModel):
    """One chat turn from the widget (JSON body or multipart form fields)"""

    message: str = ""
    conversationHistory: List[Dict[str, Any]] = Field(default_factory=list)
    isRefinement: bool = False
    baseImageData: Optional[Dict[str, Any]] = None
    refinementCount: int = Field(default=0, description="Client-reported refinement counter (untrusted hint)")

    @field_validator("message", mode="before")
    @classmethod
    def message_to_str(cls, value):
        return "" if value is None else value

    @field_validator("conversationHistory", mode="before")
    @classmethod
    def decode_history(cls, value):
        value = _decode_json_field(value, "conversationHistory")
        return [] if value is None else value

    @field_validator("baseImageData", mode="before")
    @classmethod
    def decode_base_image(cls, value):
        return _decode_json_field(value, "baseImageData")

    @field_validator("isRefinement", mode="before")
    @classmethod
    def blank_is_false(cls, value):
        return False if value in (None, "") else value

    @field_validator("refinementCount", mode="before")
    @classmethod
    def blank_is_zero(cls, value):
        return 0 if value in (None, "") else value

    @field_validator("refinementCount")
    @classmethod
    def non_negative(cls, value: int) -> int:
        return max(value, 0)


class ReferenceImageInfo(BaseModel):
    publicUrl: Optional[str] = None
    filename: Optional[str] = None
    analysis: str = ""


class ArtifactMetadata(BaseModel):
    """Describes the generated artifact for download/share in the widget"""

    filename: str
    type: str
    downloadable: bool = True
    publicUrl: Optional[str] = None
    referenceImage: Optional[ReferenceImageInfo] = None
    isVideo: bool = False
    isRefinement: bool = False
    refinementCount: int = 0
    modelUsed: Optional[str] = None
    provider: Optional[str] = None
    prompt: Optional[str] = Field(default=None, description="Design prompt; echo back as baseImageData.prompt to refine")


class ChatResponse(BaseModel):
    """Assistant reply plus any generated artifact"""

    message: str
    imageUrl: Optional[str] = None
    videoUrl: Optional[str] = None
    publicUrl: Optional[str] = None
    downloadUrl: Optional[str] = None
    conversationId: int
    referenceImage: Optional[ReferenceImageInfo] = None
    contentType: ContentType = ContentType.image
    isRefinement: bool = False
    refinementCount: int = 0
    generationError: Optional[str] = None
    metadata: Optional[ArtifactMetadata] = None


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
