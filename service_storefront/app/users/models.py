"""
User data models.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Address(BaseModel):
    """Delivery address."""
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    county: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    is_default: bool = False


class UserProfile(BaseModel):
    """Public view of a user document."""
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    email: str
    phone: Optional[str] = None
    is_admin: bool = False
    addresses: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    """Request model for profile updates."""
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = Field(None, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: Optional[str] = None
