"""
Pydantic schemas for conversation sharing
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CreateShareRequest(BaseModel):
    conversationHistory: List[Dict[str, Any]]
    title: Optional[str] = Field(default=None, max_length=200)


class CreateShareResponse(BaseModel):
    success: bool = True
    shareId: str
    shareUrl: str
    expiresAt: str


class SharedMessage(BaseModel):
    role: Optional[str] = None
    content: Any = None
    timestamp: Optional[str] = None
    imageUrl: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class SharedConversation(BaseModel):
    id: str
    title: str
    messages: List[SharedMessage]
    createdAt: str
    expiresAt: str


class GetShareResponse(BaseModel):
    success: bool = True
    conversation: SharedConversation
