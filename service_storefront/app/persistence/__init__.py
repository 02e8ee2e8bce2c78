"""
Persistence package for the Storefront service.

Documents (products, orders, carts, users) live behind the small
``DocumentStore`` contract: an in-memory store for local runs and tests, and a
PostgreSQL JSONB store for deployments.
"""

from .base import DocumentStore, InMemoryDocumentStore

__all__ = ["DocumentStore", "InMemoryDocumentStore"]
