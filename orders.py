"""
Order placement and status updates.

Placing an order is one unit of work over a single loaded snapshot: every
line is validated before any stock is touched, then stock is decremented and
the new order appended, and the snapshot is saved in one write. A rejected
order or a failed save leaves the stored document exactly as it was.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List

from database import DocumentStore, StorageError, find_by_id, new_id
from errors import InsufficientStock, NotFoundError, ProductNotFound, TransactionError
from schemas import Order, OrderItemIn, OrderLine, OrderStatus, timestamp

FIRST_ORDER_NUMBER = 1001

CENT = Decimal("0.01")

logger = logging.getLogger(__name__)


def to_decimal(value) -> Decimal:
    # go through str so 5.005 stays 5.005 instead of its binary approximation
    return Decimal(str(value))


def order_total(subtotals: List[Decimal]) -> Decimal:
    return sum(subtotals, Decimal("0")).quantize(CENT, rounding=ROUND_HALF_UP)


def next_order_number(orders: List[dict]) -> int:
    numbers = []
    for order in orders:
        try:
            numbers.append(int(order.get("orderNumber")))
        except (TypeError, ValueError):
            continue
    return max(numbers) + 1 if numbers else FIRST_ORDER_NUMBER


def place_order(store: DocumentStore, user_id: str, items: List[OrderItemIn], shipping_address: str) -> dict:
    with store.transaction():
        data = store.load()
        products = {p.get("id"): p for p in data["products"]}

        # Validate every line first; nothing is mutated in this pass
        reserved: Dict[str, int] = {}
        lines = []
        subtotals = []
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                logger.info("Order rejected for user %s: product %s not found", user_id, item.product_id)
                raise ProductNotFound(item.product_id)
            available = int(product["stock"]) - reserved.get(item.product_id, 0)
            if available < item.quantity:
                logger.info("Order rejected for user %s: insufficient stock for %s", user_id, item.product_id)
                raise InsufficientStock(item.product_id, product["name"], available, item.quantity)
            reserved[item.product_id] = reserved.get(item.product_id, 0) + item.quantity

            subtotal = to_decimal(product["price"]) * item.quantity
            subtotals.append(subtotal)
            lines.append(OrderLine(
                product_id=product["id"],
                product_name=product["name"],
                price=product["price"],
                quantity=item.quantity,
                subtotal=float(subtotal),
            ))

        order = Order(
            id=new_id(),
            order_number=next_order_number(data["orders"]),
            user_id=user_id,
            items=lines,
            total_amount=float(order_total(subtotals)),
            shipping_address=shipping_address,
            status=OrderStatus.pending,
        )

        for product_id, quantity in reserved.items():
            products[product_id]["stock"] = int(products[product_id]["stock"]) - quantity

        order_doc = order.to_document()
        data["orders"].append(order_doc)
        try:
            store.save(data)
        except StorageError:
            logger.error("Could not persist order %s for user %s", order.order_number, user_id)
            raise TransactionError("Failed to place order")

    logger.info("Order %s placed by user %s, total %.2f", order.order_number, user_id, order.total_amount)
    return order_doc


def update_order_status(store: DocumentStore, order_id: str, status: OrderStatus) -> dict:
    # Any status may follow any other; cancelling does not restock
    with store.transaction():
        data = store.load()
        order = find_by_id(data["orders"], order_id)
        if order is None:
            raise NotFoundError("Order not found")
        previous = order.get("status")
        order["status"] = status.value
        order["updatedAt"] = timestamp()
        try:
            store.save(data)
        except StorageError:
            raise TransactionError("Failed to update order status")

    logger.info("Order %s status %s -> %s", order.get("orderNumber"), previous, status.value)
    return order
