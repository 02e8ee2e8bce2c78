"""
Tests for the catalog API and its response caching.
"""

import xml.etree.ElementTree as ET
from unittest.mock import patch

import httpx
import pytest
import pytest_asyncio

from shared.errors import PersistenceError


async def completed_order(service, user_id="user-1", product_id="prod-1"):
    return await service.stores["orders"].save({
        "user": user_id,
        "status": "completed",
        "is_delivered": True,
        "order_items": [{"product": product_id, "name": "RTX 4070 Super", "price": 95000, "quantity": 1}],
    })


class TestProductCaching:
    """Read-through caching of catalog reads."""

    @pytest.mark.asyncio
    async def test_detail_miss_then_hit_without_second_read(self, service, client, product):
        products = service.stores["products"]
        with patch.object(products, "find_by_id", wraps=products.find_by_id) as find_by_id:
            first = await client.get("/api/products/prod-1")
            await service.tasks.drain()
            second = await client.get("/api/products/prod-1")

        assert first.status_code == 200
        assert first.headers["X-Cache"] == "MISS"
        assert second.status_code == 200
        assert second.headers["X-Cache"] == "HIT"
        assert second.content == first.content
        assert find_by_id.await_count == 1

    @pytest.mark.asyncio
    async def test_listing_query_strings_are_cached_separately(self, service, client, make_product, fake_redis):
        for i in range(3):
            await service.stores["products"].save(make_product(id=f"p{i}", name=f"Product {i}"))

        page_one = await client.get("/api/products?page=1&limit=2")
        await service.tasks.drain()
        page_two = await client.get("/api/products?page=2&limit=2")
        await service.tasks.drain()
        page_one_again = await client.get("/api/products?page=1&limit=2")

        assert page_two.headers["X-Cache"] == "MISS"
        assert page_one_again.headers["X-Cache"] == "HIT"
        assert page_one.json()["products"] != page_two.json()["products"]
        assert fake_redis.keys_with_prefix("cache:/api/products?") == [
            "cache:/api/products?page=1&limit=2",
            "cache:/api/products?page=2&limit=2",
        ]

    @pytest.mark.asyncio
    async def test_not_found_is_not_cached(self, service, client, fake_redis):
        response = await client.get("/api/products/nope")
        await service.tasks.drain()

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"
        assert fake_redis.keys_with_prefix("cache:") == []

    @pytest.mark.asyncio
    async def test_cache_outage_fails_open(self, service, client, product, fake_redis):
        fake_redis.down = True

        first = await client.get("/api/products/prod-1")
        second = await client.get("/api/products/prod-1")

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["name"] == second.json()["name"] == "RTX 4070 Super"

    @pytest.mark.asyncio
    async def test_cached_listing_expires(self, service, client, product, clock):
        await client.get("/api/products")
        await service.tasks.drain()
        clock.advance(service.config.cache_ttl_seconds + 1)

        response = await client.get("/api/products")
        assert response.headers["X-Cache"] == "MISS"

    @pytest.mark.asyncio
    async def test_has_purchased_is_never_cached(self, service, client, product, customer_headers, fake_redis):
        await completed_order(service)

        response = await client.get("/api/products/prod-1/has-purchased", headers=customer_headers)
        await service.tasks.drain()

        assert response.json() == {"has_purchased": True}
        assert "X-Cache" not in response.headers
        assert fake_redis.keys_with_prefix("cache:") == []


class TestProductMutations:
    """Catalog writes and cache invalidation."""

    @pytest.mark.asyncio
    async def test_update_invalidates_cached_detail(self, service, client, product, admin_headers):
        await client.get("/api/products/prod-1")
        await service.tasks.drain()

        response = await client.put("/api/products/prod-1", json={"price": 89000}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["price"] == 89000

        fresh = await client.get("/api/products/prod-1")
        assert fresh.headers["X-Cache"] == "MISS"
        assert fresh.json()["price"] == 89000

    @pytest.mark.asyncio
    async def test_update_invalidates_once(self, service, client, product, admin_headers):
        with patch.object(service.invalidator, "invalidate_after_write") as invalidate:
            await client.put("/api/products/prod-1", json={"name": "RTX 4070 Super OC"}, headers=admin_headers)
        invalidate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_offer_update_is_merged(self, service, client, product, admin_headers):
        response = await client.put(
            "/api/products/prod-1",
            json={"offer": {"enabled": True, "amount": 10}},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["offer"] == {"enabled": True, "type": "percentage", "amount": 10}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("offer", [{"amount": -5}, {"type": "bogus"}])
    async def test_rejected_offer_does_not_invalidate(self, service, client, product, admin_headers, offer):
        await client.get("/api/products/prod-1")
        await service.tasks.drain()

        with patch.object(service.invalidator, "invalidate_after_write") as invalidate:
            response = await client.put("/api/products/prod-1", json={"offer": offer}, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        invalidate.assert_not_awaited()

        cached = await client.get("/api/products/prod-1")
        assert cached.headers["X-Cache"] == "HIT"
        assert (await service.stores["products"].find_by_id("prod-1"))["offer"]["amount"] == 0

    @pytest.mark.asyncio
    async def test_persistence_failure_skips_invalidation(self, service, client, product, admin_headers):
        products = service.stores["products"]
        with patch.object(products, "save", side_effect=PersistenceError("Document store save failed")), \
                patch.object(service.invalidator, "invalidate_after_write") as invalidate:
            response = await client.put("/api/products/prod-1", json={"price": 1}, headers=admin_headers)

        assert response.status_code == 503
        assert response.json()["code"] == "PERSISTENCE_ERROR"
        invalidate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_succeeds_during_cache_outage(self, service, client, product, admin_headers, fake_redis):
        fake_redis.down = True
        response = await client.put("/api/products/prod-1", json={"price": 1}, headers=admin_headers)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_create_product_invalidates_listing(self, service, client, admin_headers, make_product):
        await client.get("/api/products")
        await service.tasks.drain()

        payload = make_product(name="Dell U2723QE", category="Monitors", brand="Dell")
        for field in ("rating", "num_reviews", "reviews"):
            payload.pop(field)
        created = await client.post("/api/products", json=payload, headers=admin_headers)
        assert created.status_code == 201
        assert created.json()["user"] == "admin-1"
        assert created.json()["id"]

        listing = await client.get("/api/products")
        assert listing.headers["X-Cache"] == "MISS"
        assert listing.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_delete_product(self, service, client, product, admin_headers):
        response = await client.delete("/api/products/prod-1", headers=admin_headers)
        assert response.json() == {"message": "Product removed"}

        assert (await client.get("/api/products/prod-1")).status_code == 404
        missing = await client.delete("/api/products/prod-1", headers=admin_headers)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_mutations_require_admin(self, client, product, customer_headers):
        response = await client.put("/api/products/prod-1", json={"price": 1}, headers=customer_headers)
        assert response.status_code == 401
        assert response.json()["message"] == "Not authorized as an admin"

        anonymous = await client.delete("/api/products/prod-1")
        assert anonymous.status_code == 401

    @pytest.mark.asyncio
    async def test_clear_cache(self, service, client, product, admin_headers, fake_redis):
        await client.get("/api/products/prod-1")
        await client.get("/api/products")
        await service.tasks.drain()

        response = await client.post("/api/products/clear-cache", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["keys_removed"] == 2
        assert fake_redis.keys_with_prefix("cache:") == []


class TestReviews:
    """Product reviews."""

    @pytest.mark.asyncio
    async def test_review_requires_completed_purchase(self, client, product, customer_headers):
        response = await client.post(
            "/api/products/prod-1/reviews",
            json={"rating": 5, "comment": "Runs cool"},
            headers=customer_headers,
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_review_unknown_product(self, client, customer_headers):
        response = await client.post(
            "/api/products/nope/reviews",
            json={"rating": 5, "comment": "Runs cool"},
            headers=customer_headers,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_add_review_recalculates_rating_and_invalidates(self, service, client, product, customer_headers):
        await completed_order(service)
        await client.get("/api/products/prod-1")
        await service.tasks.drain()

        response = await client.post(
            "/api/products/prod-1/reviews",
            json={"rating": 4, "comment": "Runs cool"},
            headers=customer_headers,
        )
        assert response.status_code == 201
        assert response.json() == {"message": "Review added", "rating": 4, "num_reviews": 1}

        fresh = await client.get("/api/products/prod-1")
        assert fresh.headers["X-Cache"] == "MISS"
        assert fresh.json()["reviews"][0]["name"] == "Wanjiru"

        duplicate = await client.post(
            "/api/products/prod-1/reviews",
            json={"rating": 1, "comment": "Changed my mind"},
            headers=customer_headers,
        )
        assert duplicate.status_code == 400

    @pytest.mark.asyncio
    async def test_review_rating_bounds(self, service, client, product, customer_headers):
        await completed_order(service)
        response = await client.post(
            "/api/products/prod-1/reviews",
            json={"rating": 6, "comment": "Too good"},
            headers=customer_headers,
        )
        assert response.status_code == 422


class TestProductQueries:
    """Listing, filtering and lookup routes."""

    @pytest_asyncio.fixture
    async def catalog(self, service, make_product):
        store = service.stores["products"]
        await store.save(make_product(id="gpu", name="RTX 4070 Super", category="Graphics Cards", price=95000,
                                      created_at="2024-01-01T00:00:00+00:00"))
        await store.save(make_product(id="mon", name="Dell U2723QE", category="Monitors", brand="Dell", price=60000,
                                      description="27 inch 4K monitor", created_at="2024-02-01T00:00:00+00:00"))
        await store.save(make_product(id="pc", name="Gaming PC Pro", category="PRE-BUILT", brand="Custom",
                                      price=250000, created_at="2024-03-01T00:00:00+00:00"))

    @pytest.mark.asyncio
    async def test_default_sort_is_newest_first(self, client, catalog):
        body = (await client.get("/api/products")).json()
        assert [p["id"] for p in body["products"]] == ["pc", "mon", "gpu"]
        assert body["total"] == 3
        assert body["pages"] == 1
        assert body["has_more"] is False

    @pytest.mark.asyncio
    async def test_sort_by_price(self, client, catalog):
        body = (await client.get("/api/products?sort=price")).json()
        assert [p["id"] for p in body["products"]] == ["mon", "gpu", "pc"]

    @pytest.mark.asyncio
    async def test_filter_by_category_and_search(self, client, catalog):
        by_category = (await client.get("/api/products?category=graphics-cards")).json()
        assert [p["id"] for p in by_category["products"]] == ["gpu"]

        by_search = (await client.get("/api/products?search=4k")).json()
        assert [p["id"] for p in by_search["products"]] == ["mon"]

        everything = (await client.get("/api/products?category=all")).json()
        assert everything["total"] == 3

    @pytest.mark.asyncio
    async def test_pagination(self, client, catalog):
        body = (await client.get("/api/products?limit=2&page=1")).json()
        assert len(body["products"]) == 2
        assert body["pages"] == 2
        assert body["has_more"] is True

    @pytest.mark.asyncio
    async def test_category_slug_route(self, service, client, catalog, fake_redis):
        response = await client.get("/api/products/category/pre-built")
        await service.tasks.drain()

        assert [p["id"] for p in response.json()["products"]] == ["pc"]
        assert "cache:/api/products/category/pre-built" in fake_redis.data

        everything = (await client.get("/api/products/category/all")).json()
        assert everything["total"] == 3

    @pytest.mark.asyncio
    async def test_slug_lookup(self, client, catalog):
        response = await client.get("/api/products/slug/dell-u2723qe-nairobi")
        assert response.json()["id"] == "mon"
        assert (await client.get("/api/products/slug/unknown")).status_code == 404

    @pytest.mark.asyncio
    async def test_brands(self, client, catalog):
        assert (await client.get("/api/products/brands")).json() == ["Custom", "Dell", "NVIDIA"]

    @pytest.mark.asyncio
    async def test_sitemap_lists_home_categories_and_products(self, service, client, catalog):
        response = await client.get("/sitemap.xml")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert response.text.startswith('<?xml version="1.0" encoding="UTF-8"?>')

        ns = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}
        root = ET.fromstring(response.content)
        entries = {
            url.find("sm:loc", ns).text: url.find("sm:lastmod", ns).text
            for url in root.findall("sm:url", ns)
        }

        site = "https://www.gamecityelectronics.com"
        assert f"{site}/" in entries
        assert {f"{site}/category/graphics-cards", f"{site}/category/monitors", f"{site}/category/pre-built"} <= set(entries)
        assert f"{site}/build-pc" in entries

        monitor = await service.stores["products"].find_by_id("mon")
        assert entries[f"{site}/product/dell-u2723qe-nairobi"] == monitor["updated_at"]
        assert f"{site}/product/rtx-4070-super-nairobi" in entries
        assert f"{site}/product/gaming-pc-pro-nairobi" in entries
        assert len(entries) == 1 + 3 + 3 + 5

    @pytest.mark.asyncio
    async def test_sitemap_is_not_cached(self, service, client, catalog, fake_redis):
        response = await client.get("/sitemap.xml")
        await service.tasks.drain()

        assert "X-Cache" not in response.headers
        assert fake_redis.keys_with_prefix("cache:") == []


class TestServiceEndpoints:
    """Health and metrics."""

    @pytest.mark.asyncio
    async def test_health_ok(self, client):
        body = (await client.get("/health")).json()
        assert body["status"] == "ok"
        assert body["dependencies"] == {"redis": "ok", "documents": "ok"}

    @pytest.mark.asyncio
    async def test_health_degraded_when_cache_down(self, client, fake_redis):
        fake_redis.down = True
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["dependencies"]["redis"] == "error"

    @pytest.mark.asyncio
    async def test_metrics_exposes_cache_counters(self, service, client, product):
        await client.get("/api/products/prod-1")
        await service.tasks.drain()
        await client.get("/api/products/prod-1")

        text = (await client.get("/metrics")).text
        assert 'cache_hits_total{family="product"} 1.0' in text
        assert 'cache_misses_total{family="product"} 1.0' in text

    @pytest.mark.asyncio
    async def test_request_id_is_propagated(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_unhandled_error_is_still_recorded(self, service):
        @service.app.get("/boom")
        async def boom():
            raise RuntimeError("boom")

        transport = httpx.ASGITransport(app=service.app, raise_app_exceptions=False)
        with patch("shared.base_service.clear_context") as clear_context:
            async with httpx.AsyncClient(transport=transport, base_url="http://storefront.test") as http:
                response = await http.get("/boom")

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"
        assert service.metrics.get_sample(
            "http_requests_total", method="GET", endpoint="/boom", status_code="500"
        ) == 1.0
        clear_context.assert_called_once()
