"""
Orders: checkout and fulfilment behind ``/api/orders``.
"""

from .service import OrderService

__all__ = ["OrderService"]
