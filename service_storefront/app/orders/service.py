"""
Order service: checkout, payment, fulfilment and the stock changes they cause.
"""

from datetime import datetime, timezone
from typing import List

from shared.errors import AuthorizationError, NotFoundError, ValidationError
from shared.logging import get_logger

from ..caching.invalidation import CacheInvalidator
from ..persistence.base import Document, DocumentStore
from .models import OrderCreateRequest, OrderStatus, PaymentRequest


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderService:
    """Orders backed by a document store.

    Fulfilment changes product stock, which is a catalog mutation: the
    product scope is invalidated once, after every product write of the
    operation has been acknowledged.
    """

    def __init__(self, orders: DocumentStore, products: DocumentStore, invalidator: CacheInvalidator):
        self.orders = orders
        self.products = products
        self.invalidator = invalidator
        self.logger = get_logger("storefront.orders")

    async def create_order(self, user_id: str, request: OrderCreateRequest) -> Document:
        if not request.order_items:
            raise ValidationError("No order items")

        document = request.model_dump(mode="json")
        document.update(
            user=user_id,
            payment_result=None,
            is_paid=False,
            paid_at=None,
            is_delivered=False,
            delivered_at=None,
            status=OrderStatus.PENDING.value,
        )
        created = await self.orders.save(document)
        self.logger.info("Order created", order_id=created["id"], items=len(request.order_items))
        return created

    async def get_order(self, order_id: str, user: Document) -> Document:
        order = await self._load(order_id)
        if order["user"] != user["id"] and not user.get("is_admin"):
            raise AuthorizationError("Not authorized to view this order", details={"order_id": order_id})
        return order

    async def list_user_orders(self, user_id: str) -> List[Document]:
        return await self.orders.find({"user": user_id})

    async def list_orders(self) -> List[Document]:
        return await self.orders.find()

    async def pay_order(self, order_id: str, payment: PaymentRequest) -> Document:
        order = await self._load(order_id)
        order.update(
            is_paid=True,
            paid_at=_now(),
            payment_result={
                "id": payment.id,
                "status": payment.status,
                "update_time": payment.update_time,
                "email_address": payment.payer.email_address,
            },
        )
        return await self.orders.save(order)

    async def deliver_order(self, order_id: str) -> Document:
        order = await self._load(order_id)
        if order.get("is_delivered"):
            raise ValidationError("Order is already delivered", details={"order_id": order_id})

        await self._adjust_stock(order, -1)

        order.update(is_delivered=True, delivered_at=_now(), status=OrderStatus.DELIVERED.value)
        return await self.orders.save(order)

    async def update_status(self, order_id: str, status: OrderStatus) -> Document:
        order = await self._load(order_id)
        completing = status is OrderStatus.COMPLETED and not order.get("is_delivered")
        reverting = status is OrderStatus.PENDING and order.get("is_delivered")

        if completing or reverting:
            await self._adjust_stock(order, -1 if completing else 1)
            order.update(
                is_delivered=bool(completing),
                delivered_at=_now() if completing else None,
            )

        order["status"] = status.value
        updated = await self.orders.save(order)
        self.logger.info("Order status updated", order_id=order_id, status=status.value)
        return updated

    async def delete_order(self, order_id: str) -> None:
        if not await self.orders.delete(order_id):
            raise NotFoundError("Order", details={"order_id": order_id})

    async def _load(self, order_id: str) -> Document:
        order = await self.orders.find_by_id(order_id)
        if order is None:
            raise NotFoundError("Order", details={"order_id": order_id})
        return order

    async def _adjust_stock(self, order: Document, direction: int) -> None:
        """Apply each line item's quantity to its product.

        Invalidates the product scope once if any product write went through,
        including when a later write fails.
        """
        written = 0
        try:
            for item in order.get("order_items", []):
                product = await self.products.find_by_id(item["product"])
                if product is None:
                    self.logger.warning("Order references unknown product", product_id=item["product"])
                    continue
                product["count_in_stock"] = product.get("count_in_stock", 0) + direction * item["quantity"]
                await self.products.save(product)
                written += 1
        finally:
            if written:
                await self.invalidator.invalidate_after_write()
