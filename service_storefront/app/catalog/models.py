"""
Product data models for the catalog.
"""

from typing import Any, Dict, List, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class OfferType(str, Enum):
    """Discount offer types."""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Offer(BaseModel):
    """Discount attached to a product."""
    enabled: bool = False
    type: OfferType = OfferType.PERCENTAGE
    amount: float = 0
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class OfferUpdate(BaseModel):
    """Partial offer update; validated by the catalog service, not the schema."""
    model_config = ConfigDict(extra="ignore")

    enabled: Optional[bool] = None
    type: Optional[str] = None
    amount: Optional[float] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class Review(BaseModel):
    """Customer review."""
    user: str
    name: str
    rating: float
    comment: str
    created_at: Optional[str] = None


class Product(BaseModel):
    """Catalog product document."""
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    image: str
    images: List[str] = Field(default_factory=list)
    description: str
    brand: str
    category: str
    price: float = 0
    count_in_stock: int = 0
    rating: float = 0
    num_reviews: int = 0
    reviews: List[Review] = Field(default_factory=list)
    specifications: Dict[str, Any] = Field(default_factory=dict)
    offer: Offer = Field(default_factory=Offer)
    user: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProductCreateRequest(BaseModel):
    """Request model for product creation."""
    name: str = Field(..., min_length=1)
    image: str = Field(..., min_length=1)
    images: List[str] = Field(default_factory=list)
    description: str = Field(..., min_length=1)
    brand: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    price: float = Field(0, ge=0)
    count_in_stock: int = Field(0, ge=0)
    specifications: Dict[str, Any] = Field(default_factory=dict)
    offer: Optional[Offer] = None


class ProductUpdateRequest(BaseModel):
    """Request model for partial product updates."""
    name: Optional[str] = None
    image: Optional[str] = None
    images: Optional[List[str]] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    count_in_stock: Optional[int] = None
    specifications: Optional[Dict[str, Any]] = None
    offer: Optional[OfferUpdate] = None


class ReviewCreateRequest(BaseModel):
    """Request model for adding a review."""
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)

