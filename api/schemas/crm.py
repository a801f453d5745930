"""
Pydantic schemas for the HubSpot contact sync endpoint
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, EmailStr, Field


class CrmContactRequest(BaseModel):
    """One widget conversion event for a known email"""

    email: EmailStr
    sessionData: Dict[str, Any] = Field(default_factory=dict, description="Client-side session counters (hints only)")
    conversionTrigger: str = Field(default="session_start", min_length=1, max_length=100)
    imageUrl: Optional[str] = None
    actionDetails: Optional[Dict[str, Any]] = None


class CrmContactResponse(BaseModel):
    success: bool = True
    contactId: Optional[str] = None
    created: bool = False
    noteId: Optional[str] = None
