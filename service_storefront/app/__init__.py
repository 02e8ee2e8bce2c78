"""
Storefront Service package.

This package serves the shop API: product catalog, carts, orders and user
profiles. It provides:

- app.main: API surface, health and service lifecycle.
- app.caching: Redis read-through cache for catalog reads and invalidation
  after catalog writes.
- app.catalog, app.orders, app.carts, app.users: domain services and models.
- app.persistence: document stores (in-memory, PostgreSQL JSONB).
- app.auth: bearer-token guards.

Guidelines:
- A cache outage must never fail a request; reads fall through to the store.
- Invalidate only after the document store acknowledged the write.
"""
