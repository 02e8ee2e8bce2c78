"""
Product catalog: models and the service behind ``/api/products``.
"""

from .service import CatalogService

__all__ = ["CatalogService"]
