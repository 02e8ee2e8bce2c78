"""
Storefront service: product catalog, carts, orders and user profiles.

Catalog reads are served through a Redis read-through cache; every catalog
mutation invalidates the cached product responses once it has been persisted.
"""

from typing import Dict, Optional

import redis.asyncio as redis
from fastapi import Depends, Query, Request, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config

from .auth import AuthGuard, TokenValidator
from .caching import CacheInvalidator, CacheKeyScheme, DetachedTaskGroup, ReadThroughCache, RedisCacheStore
from .carts import CartService
from .carts.models import CartItemRequest, CartQuantityRequest
from .catalog import CatalogService
from .catalog.models import ProductCreateRequest, ProductUpdateRequest, ReviewCreateRequest
from .orders import OrderService
from .orders.models import OrderCreateRequest, OrderStatusRequest, PaymentRequest
from .persistence import DocumentStore, InMemoryDocumentStore
from .persistence.base import Document
from .persistence.postgres import PostgreSQLDatabase
from .users import UserService
from .users.models import Address, ProfileUpdateRequest

COLLECTIONS = ("products", "orders", "carts", "users")
SHUTDOWN_DRAIN_SECONDS = 5.0


class StorefrontService(BaseService):
    """Storefront service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        redis_client: Optional[redis.Redis] = None,
        stores: Optional[Dict[str, DocumentStore]] = None,
    ):
        super().__init__("storefront", 8000, config or get_config("storefront", 8000))

        # Document stores
        self.database: Optional[PostgreSQLDatabase] = None
        if stores is None:
            if self.config.postgres_dsn:
                self.database = PostgreSQLDatabase(self.config.postgres_dsn)
                stores = {name: self.database.collection(name) for name in COLLECTIONS}
            else:
                stores = {name: InMemoryDocumentStore(name) for name in COLLECTIONS}
        self.stores = stores

        # Response cache
        self.key_scheme = CacheKeyScheme(self.config.cache_namespace, normalize_query=self.config.cache_normalize_query)
        self.tasks = DetachedTaskGroup("cache")
        self.cache_store = RedisCacheStore.from_config(self.config, client=redis_client, metrics=self.metrics)
        self.cache = ReadThroughCache(
            self.cache_store,
            self.key_scheme,
            self.tasks,
            default_ttl=self.config.cache_ttl_seconds,
            metrics=self.metrics,
        )
        self.invalidator = CacheInvalidator(
            self.cache_store,
            self.key_scheme,
            self.tasks,
            wait_seconds=self.config.cache_invalidation_wait_seconds,
            metrics=self.metrics,
        )

        # Domain services
        self.catalog = CatalogService(stores["products"], stores["orders"], self.invalidator)
        self.orders = OrderService(stores["orders"], stores["products"], self.invalidator)
        self.carts = CartService(stores["carts"], stores["products"])
        self.users = UserService(stores["users"])
        self.auth = AuthGuard(TokenValidator(self.config.jwt_secret, self.config.jwt_algorithm), stores["users"])

        self._setup_product_routes()
        self._setup_cart_routes()
        self._setup_order_routes()
        self._setup_user_routes()
        self._setup_sitemap_routes()

    def _setup_sitemap_routes(self):
        """Set up the public XML sitemap."""

        @self.app.get("/sitemap.xml")
        async def sitemap():
            xml = await self.catalog.sitemap(self.config.site_url)
            return Response(content=xml, media_type="application/xml")

    def _setup_product_routes(self):
        """Set up catalog routes. Static paths are registered before ``/{product_id}``."""

        @self.app.get("/api/products")
        @self.cache.cached(family="products")
        async def list_products(
            request: Request,
            page: int = Query(1, ge=1),
            limit: int = Query(50, ge=1, le=200),
            category: Optional[str] = None,
            sort: Optional[str] = None,
            search: Optional[str] = None,
        ):
            """List products with filtering, sorting and pagination."""
            return await self.catalog.list_products(page, limit, category, sort, search)

        @self.app.get("/api/products/brands")
        async def list_brands():
            return await self.catalog.get_brands()

        @self.app.get("/api/products/category/{category}")
        @self.cache.cached(family="category")
        async def list_category(
            request: Request,
            category: str,
            page: int = Query(1, ge=1),
            limit: int = Query(10, ge=1, le=200),
            sort: Optional[str] = None,
        ):
            """List one category by its navigation slug."""
            return await self.catalog.list_by_category(category, page, limit, sort)

        @self.app.get("/api/products/slug/{slug}")
        async def get_product_by_slug(slug: str):
            return await self.catalog.get_by_slug(slug)

        @self.app.post("/api/products/clear-cache")
        async def clear_cache(user: Document = Depends(self.auth.admin)):
            """Evict every cached catalog response."""
            cleared = await self.catalog.clear_cache()
            self.logger.info("Product cache cleared", user_id=user["id"], keys=cleared)
            return {"message": "Product cache cleared", "keys_removed": cleared}

        @self.app.post("/api/products", status_code=201)
        async def create_product(request: ProductCreateRequest, user: Document = Depends(self.auth.admin)):
            product = await self.catalog.create_product(user["id"], request)
            self.metrics.record_business_event("product_created")
            return product

        @self.app.get("/api/products/{product_id}")
        @self.cache.cached(family="product")
        async def get_product(request: Request, product_id: str):
            return await self.catalog.get_product(product_id)

        @self.app.put("/api/products/{product_id}")
        async def update_product(
            product_id: str,
            request: ProductUpdateRequest,
            user: Document = Depends(self.auth.admin),
        ):
            return await self.catalog.update_product(product_id, request)

        @self.app.delete("/api/products/{product_id}")
        async def delete_product(product_id: str, user: Document = Depends(self.auth.admin)):
            await self.catalog.delete_product(product_id)
            return {"message": "Product removed"}

        @self.app.post("/api/products/{product_id}/reviews", status_code=201)
        async def add_review(
            product_id: str,
            request: ReviewCreateRequest,
            user: Document = Depends(self.auth.protect),
        ):
            """Add a review; only buyers with a completed order may review."""
            product = await self.catalog.add_review(product_id, user, request)
            self.metrics.record_business_event("review_added")
            return {"message": "Review added", "rating": product["rating"], "num_reviews": product["num_reviews"]}

        @self.app.get("/api/products/{product_id}/has-purchased")
        async def has_purchased(product_id: str, user: Document = Depends(self.auth.protect)):
            return {"has_purchased": await self.catalog.has_purchased(user["id"], product_id)}

    def _setup_cart_routes(self):
        """Set up cart routes."""

        @self.app.get("/api/cart")
        async def get_cart(user: Document = Depends(self.auth.protect)):
            return await self.carts.get_cart(user["id"])

        @self.app.post("/api/cart", status_code=201)
        async def add_to_cart(request: CartItemRequest, user: Document = Depends(self.auth.protect)):
            return await self.carts.add_item(user["id"], request.product_id, request.quantity)

        @self.app.put("/api/cart/{product_id}")
        async def update_cart_item(
            product_id: str,
            request: CartQuantityRequest,
            user: Document = Depends(self.auth.protect),
        ):
            return await self.carts.update_item(user["id"], product_id, request.quantity)

        @self.app.delete("/api/cart/{product_id}")
        async def remove_from_cart(product_id: str, user: Document = Depends(self.auth.protect)):
            return await self.carts.remove_item(user["id"], product_id)

        @self.app.delete("/api/cart")
        async def clear_cart(user: Document = Depends(self.auth.protect)):
            await self.carts.clear(user["id"])
            return {"message": "Cart cleared"}

    def _setup_order_routes(self):
        """Set up order routes."""

        @self.app.post("/api/orders", status_code=201)
        async def create_order(request: OrderCreateRequest, user: Document = Depends(self.auth.protect)):
            order = await self.orders.create_order(user["id"], request)
            self.metrics.record_business_event("order_created")
            return order

        @self.app.get("/api/orders")
        async def list_orders(user: Document = Depends(self.auth.admin)):
            return await self.orders.list_orders()

        @self.app.get("/api/orders/myorders")
        async def list_my_orders(user: Document = Depends(self.auth.protect)):
            return await self.orders.list_user_orders(user["id"])

        @self.app.get("/api/orders/{order_id}")
        async def get_order(order_id: str, user: Document = Depends(self.auth.protect)):
            return await self.orders.get_order(order_id, user)

        @self.app.put("/api/orders/{order_id}/pay")
        async def pay_order(order_id: str, request: PaymentRequest, user: Document = Depends(self.auth.protect)):
            return await self.orders.pay_order(order_id, request)

        @self.app.put("/api/orders/{order_id}/deliver")
        async def deliver_order(order_id: str, user: Document = Depends(self.auth.admin)):
            return await self.orders.deliver_order(order_id)

        @self.app.put("/api/orders/{order_id}/status")
        async def update_order_status(
            order_id: str,
            request: OrderStatusRequest,
            user: Document = Depends(self.auth.admin),
        ):
            return await self.orders.update_status(order_id, request.status)

        @self.app.delete("/api/orders/{order_id}")
        async def delete_order(order_id: str, user: Document = Depends(self.auth.admin)):
            await self.orders.delete_order(order_id)
            return {"message": "Order deleted successfully"}

    def _setup_user_routes(self):
        """Set up user profile routes."""

        @self.app.get("/api/users")
        async def list_users(user: Document = Depends(self.auth.admin)):
            return await self.users.list_users()

        @self.app.get("/api/users/profile")
        async def get_profile(user: Document = Depends(self.auth.protect)):
            return await self.users.get_profile(user)

        @self.app.put("/api/users/profile")
        async def update_profile(request: ProfileUpdateRequest, user: Document = Depends(self.auth.protect)):
            return await self.users.update_profile(user, request)

        @self.app.post("/api/users/address", status_code=201)
        async def add_address(request: Address, user: Document = Depends(self.auth.protect)):
            return {"addresses": await self.users.add_address(user, request)}

    async def _check_dependencies(self):
        """Check storefront dependencies."""
        dependencies = {}

        # Cache outages degrade the service but never fail the check
        dependencies["redis"] = "ok" if await self.cache_store.health_check() else "error"

        try:
            healthy = await self.stores["products"].health_check()
            dependencies["documents"] = "ok" if healthy else "error"
        except Exception:
            dependencies["documents"] = "error"

        return dependencies

    async def start(self):
        """Start storefront service components."""
        if self.database:
            await self.database.start()
        await self.cache_store.start()

        self.logger.info(
            "Storefront service started",
            cache_available=self.cache_store.available,
            documents="postgres" if self.database else "memory",
        )

    async def stop(self):
        """Stop storefront service components."""
        await self.tasks.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        await self.tasks.cancel_all()
        await self.cache_store.stop()
        if self.database:
            await self.database.stop()

        self.logger.info("Storefront service stopped")


def create_app():
    """Create storefront service application."""
    service = StorefrontService()
    return service.app


if __name__ == "__main__":
    service = StorefrontService()
    service.run()
