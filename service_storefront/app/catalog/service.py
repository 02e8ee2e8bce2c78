"""
Catalog service: product reads and cache-invalidating mutations.
"""

import math
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from shared.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from shared.logging import get_logger

from ..caching.invalidation import CacheInvalidator
from ..persistence.base import Document, DocumentStore
from .models import OfferType, Product, ProductCreateRequest, ProductUpdateRequest, ReviewCreateRequest

# URL slugs used by the storefront navigation
CATEGORY_SLUGS = {
    "pre-built": "PRE-BUILT",
    "monitors": "Monitors",
    "graphics-cards": "Graphics Cards",
    "memory": "Memory",
    "processors": "Processors",
    "storage": "Storage",
    "motherboards": "Motherboards",
    "cases": "Cases",
    "power-supply": "Power Supply",
    "cpu-cooling": "CPU Cooling",
    "oem": "OEM",
    "accessories": "Accessories",
}

SITEMAP_NAMESPACE = "http://www.sitemaps.org/schemas/sitemap/0.9"
SITEMAP_STATIC_PAGES = (
    ("/search", "0.7"),
    ("/contact", "0.6"),
    ("/build-pc", "0.7"),
    ("/privacy", "0.3"),
    ("/terms", "0.3"),
)

SORTABLE_FIELDS = {"created_at", "updated_at", "price", "rating", "name", "count_in_stock", "num_reviews"}
DEFAULT_SORT = "-created_at"


def slugify(value: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace/underscores/dashes to one dash."""
    slug = value.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")


def sort_documents(documents: List[Document], sort: Optional[str]) -> List[Document]:
    """Sort by a single field; a leading ``-`` means descending."""
    sort = sort or DEFAULT_SORT
    descending = sort.startswith("-")
    field = sort.lstrip("-")
    if field not in SORTABLE_FIELDS:
        descending, field = True, "created_at"

    present = [d for d in documents if d.get(field) is not None]
    missing = [d for d in documents if d.get(field) is None]
    present.sort(key=lambda d: d[field], reverse=descending)
    return present + missing


def paginate(documents: List[Document], page: int, limit: int) -> Dict[str, Any]:
    total = len(documents)
    pages = math.ceil(total / limit) if limit else 0
    start = (page - 1) * limit
    return {
        "products": documents[start:start + limit],
        "page": page,
        "pages": pages,
        "total": total,
        "has_more": page < pages,
    }


class CatalogService:
    """Product catalog backed by a document store.

    Every successful mutation calls the cache invalidator exactly once, after
    the document store acknowledged the write. Rejected or failed writes never
    reach the invalidator.
    """

    def __init__(self, products: DocumentStore, orders: DocumentStore, invalidator: CacheInvalidator):
        self.products = products
        self.orders = orders
        self.invalidator = invalidator
        self.logger = get_logger("storefront.catalog")

    # Reads

    async def list_products(
        self,
        page: int = 1,
        limit: int = 50,
        category: Optional[str] = None,
        sort: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        documents = await self.products.find()

        if category and category != "all":
            wanted = category.replace("-", " ").lower()
            documents = [d for d in documents if wanted in str(d.get("category", "")).lower()]

        if search:
            needle = search.lower()
            documents = [
                d for d in documents
                if needle in str(d.get("name", "")).lower() or needle in str(d.get("description", "")).lower()
            ]

        return paginate(sort_documents(documents, sort), page, limit)

    async def list_by_category(self, slug: str, page: int = 1, limit: int = 10, sort: Optional[str] = None) -> Dict[str, Any]:
        if slug == "all":
            documents = await self.products.find()
        else:
            documents = await self.products.find({"category": CATEGORY_SLUGS.get(slug, slug)})
        return paginate(sort_documents(documents, sort), page, limit)

    async def get_product(self, product_id: str) -> Document:
        product = await self.products.find_by_id(product_id)
        if product is None:
            raise NotFoundError("Product", details={"product_id": product_id})
        return product

    async def get_by_slug(self, slug: str) -> Document:
        wanted = re.sub(r"-nairobi$", "", slug)
        for product in await self.products.find():
            if slugify(product.get("name", "")) == wanted:
                return product
        raise NotFoundError("Product", details={"slug": slug})

    async def get_brands(self) -> List[str]:
        brands = {d.get("brand") for d in await self.products.find()}
        return sorted(b for b in brands if b)

    async def has_purchased(self, user_id: str, product_id: str) -> bool:
        completed = await self.orders.find({
            "user": user_id,
            "status": "completed",
            "order_items": [{"product": product_id}],
        })
        return bool(completed)

    async def sitemap(self, base_url: str) -> str:
        """Render the public XML sitemap: homepage, categories, products, static pages."""
        base_url = base_url.rstrip("/")
        now = datetime.now(timezone.utc).isoformat()
        products = await self.products.find()

        root = ET.Element("urlset", {"xmlns": SITEMAP_NAMESPACE})

        def add_url(path: str, lastmod: str, changefreq: str, priority: str) -> None:
            url = ET.SubElement(root, "url")
            ET.SubElement(url, "loc").text = f"{base_url}{path}"
            ET.SubElement(url, "lastmod").text = lastmod
            ET.SubElement(url, "changefreq").text = changefreq
            ET.SubElement(url, "priority").text = priority

        add_url("/", now, "daily", "1.0")

        categories = dict.fromkeys(p["category"] for p in products if p.get("category"))
        for category in categories:
            category_slug = re.sub(r"\s+", "-", category.lower())
            add_url(f"/category/{category_slug}", now, "weekly", "0.8")

        for product in products:
            lastmod = product.get("updated_at") or product.get("created_at") or now
            add_url(f"/product/{slugify(product.get('name', ''))}-nairobi", lastmod, "weekly", "0.9")

        for path, priority in SITEMAP_STATIC_PAGES:
            add_url(path, now, "monthly", priority)

        return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode")

    # Mutations

    async def create_product(self, user_id: str, request: ProductCreateRequest) -> Document:
        document = request.model_dump(mode="json", exclude_none=True)
        document.update(user=user_id, rating=0, num_reviews=0, reviews=[])
        # Fill schema defaults (offer, images) before persisting
        document = Product.model_validate({"id": "", **document}).model_dump(mode="json", exclude={"id"})
        created = await self.products.save(document)

        await self.invalidator.invalidate_after_write()
        self.logger.info("Product created", product_id=created["id"], name=created["name"])
        return created

    async def update_product(self, product_id: str, request: ProductUpdateRequest) -> Document:
        product = await self.get_product(product_id)

        changes = request.model_dump(exclude_unset=True, exclude_none=True, exclude={"offer"})
        product.update(changes)

        if request.offer is not None:
            product["offer"] = self._merge_offer(product.get("offer") or {}, request.offer.model_dump(exclude_none=True))

        updated = await self.products.save(product)

        await self.invalidator.invalidate_after_write()
        self.logger.info("Product updated", product_id=product_id, fields=sorted(changes))
        return updated

    async def delete_product(self, product_id: str) -> None:
        if not await self.products.delete(product_id):
            raise NotFoundError("Product", details={"product_id": product_id})

        await self.invalidator.invalidate_after_write()
        self.logger.info("Product deleted", product_id=product_id)

    async def add_review(self, product_id: str, user: Document, request: ReviewCreateRequest) -> Document:
        product = await self.get_product(product_id)
        reviews = product.setdefault("reviews", [])

        if any(r.get("user") == user["id"] for r in reviews):
            raise ConflictError("Product already reviewed", details={"product_id": product_id})

        if not await self.has_purchased(user["id"], product_id):
            raise AuthorizationError(
                "You must purchase this product to review it",
                details={"product_id": product_id},
            )

        reviews.append({
            "user": user["id"],
            "name": user.get("name", ""),
            "rating": request.rating,
            "comment": request.comment,
            "created_at": datetime.now(timezone.utc).isoformat(),
        })
        product["num_reviews"] = len(reviews)
        product["rating"] = sum(r["rating"] for r in reviews) / len(reviews)

        saved = await self.products.save(product)

        await self.invalidator.invalidate_after_write()
        self.logger.info("Review added", product_id=product_id, rating=request.rating)
        return saved

    async def clear_cache(self) -> int:
        """Evict every cached catalog response now and return how many keys went."""
        return await self.invalidator.invalidate()

    @staticmethod
    def _merge_offer(current: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
        amount = changes.get("amount")
        if amount is not None and amount < 0:
            raise ValidationError("Offer amount must be >= 0", details={"amount": amount})

        offer_type = changes.get("type")
        if offer_type is not None and offer_type not in {t.value for t in OfferType}:
            raise ValidationError("Offer type must be percentage or fixed", details={"type": offer_type})

        return {**current, **changes}
