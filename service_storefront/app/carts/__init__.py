"""
Shopping carts behind ``/api/cart``.
"""

from .service import CartService

__all__ = ["CartService"]
