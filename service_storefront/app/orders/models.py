"""
Order data models.
"""

from typing import Any, Dict, List, Optional
from enum import Enum

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    """Order lifecycle states."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderItem(BaseModel):
    """Line item copied from the catalog at checkout."""
    product: str
    name: str
    image: Optional[str] = None
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class OrderCreateRequest(BaseModel):
    """Request model for order creation."""
    order_items: List[OrderItem] = Field(default_factory=list)
    payment_method: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    items_price: float = Field(0, ge=0)
    total_price: float = Field(0, ge=0)


class Payer(BaseModel):
    email_address: Optional[str] = None


class PaymentRequest(BaseModel):
    """Payment provider callback recorded on the order."""
    id: str
    status: str
    update_time: Optional[str] = None
    payer: Payer = Field(default_factory=Payer)


class OrderStatusRequest(BaseModel):
    status: OrderStatus
