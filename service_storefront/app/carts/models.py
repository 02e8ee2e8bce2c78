"""
Cart data models.
"""

from pydantic import BaseModel, Field


class CartItemRequest(BaseModel):
    """Request model for adding a product to the cart."""
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class CartQuantityRequest(BaseModel):
    """New quantity for a cart line; zero or less removes it."""
    quantity: int
