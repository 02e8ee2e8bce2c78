"""
Cart service: one cart document per user.
"""

from shared.errors import NotFoundError
from shared.logging import get_logger

from ..persistence.base import Document, DocumentStore


class CartService:
    """Per-user shopping carts."""

    def __init__(self, carts: DocumentStore, products: DocumentStore):
        self.carts = carts
        self.products = products
        self.logger = get_logger("storefront.carts")

    async def get_cart(self, user_id: str) -> Document:
        """Return the user's cart, creating an empty one on first access."""
        cart = await self.carts.find_one({"user": user_id})
        if cart is None:
            cart = await self.carts.save({"user": user_id, "cart_items": []})
        return cart

    async def add_item(self, user_id: str, product_id: str, quantity: int) -> Document:
        product = await self.products.find_by_id(product_id)
        if product is None:
            raise NotFoundError("Product", details={"product_id": product_id})

        cart = await self.get_cart(user_id)
        items = cart["cart_items"]
        for item in items:
            if item["product"] == product_id:
                item["quantity"] += quantity
                break
        else:
            items.append({
                "product": product_id,
                "name": product.get("name"),
                "image": product.get("image"),
                "price": product.get("price", 0),
                "quantity": quantity,
            })

        return await self.carts.save(cart)

    async def update_item(self, user_id: str, product_id: str, quantity: int) -> Document:
        cart = await self._existing_cart(user_id)
        items = cart["cart_items"]
        index = next((i for i, item in enumerate(items) if item["product"] == product_id), None)
        if index is None:
            raise NotFoundError("Cart item", details={"product_id": product_id})

        if quantity > 0:
            items[index]["quantity"] = quantity
        else:
            del items[index]
        return await self.carts.save(cart)

    async def remove_item(self, user_id: str, product_id: str) -> Document:
        cart = await self._existing_cart(user_id)
        cart["cart_items"] = [item for item in cart["cart_items"] if item["product"] != product_id]
        return await self.carts.save(cart)

    async def clear(self, user_id: str) -> None:
        cart = await self._existing_cart(user_id)
        cart["cart_items"] = []
        await self.carts.save(cart)
        self.logger.info("Cart cleared", user_id=user_id)

    async def _existing_cart(self, user_id: str) -> Document:
        cart = await self.carts.find_one({"user": user_id})
        if cart is None:
            raise NotFoundError("Cart", details={"user_id": user_id})
        return cart
