"""
Order placement and order lifecycle

Placement reserves stock line by line with a conditional decrement
(`stock >= quantity`), so two concurrent orders can never both take the
last copies. If a later line or the order insert fails, every reservation
already made is given back before the error propagates.
"""

import logging
import secrets
import string
from datetime import datetime
from typing import Dict, List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import (
    BOOKS,
    ORDERS,
    collection,
    create_document,
    get_document_by_id,
    get_documents,
    serialize,
    to_object_id,
    update_document,
    utcnow,
)
from errors import (
    InsufficientStockError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)
from schemas import Order, OrderCreate, OrderLine, OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)

ORDER_ID_ALPHABET = string.ascii_uppercase + string.digits
ORDER_ID_ATTEMPTS = 5

# Allowed next states; delivered and cancelled are terminal
STATUS_TRANSITIONS: Dict[str, set] = {
    OrderStatus.pending.value: {OrderStatus.processing.value, OrderStatus.cancelled.value},
    OrderStatus.processing.value: {OrderStatus.shipped.value, OrderStatus.cancelled.value},
    OrderStatus.shipped.value: {OrderStatus.delivered.value},
    OrderStatus.delivered.value: set(),
    OrderStatus.cancelled.value: set(),
}


def generate_order_id(now: Optional[datetime] = None) -> str:
    """Human readable id, e.g. ORD-261019-7KQ2XA"""
    now = now or utcnow()
    suffix = "".join(secrets.choice(ORDER_ID_ALPHABET) for _ in range(6))
    return f"ORD-{now:%y%m%d}-{suffix}"


def unit_price(book: dict) -> float:
    # A zero or missing discount price means no discount
    return float(book.get("discount_price") or book["price"])


def can_transition(current: str, new: str) -> bool:
    return current == new or new in STATUS_TRANSITIONS.get(current, set())


# ------------------------- Stock ------------------------------
def _reserve_stock(book_oid, quantity: int) -> Optional[dict]:
    return collection(BOOKS).find_one_and_update(
        {"_id": book_oid, "stock": {"$gte": quantity}},
        {"$inc": {"stock": -quantity}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )


def _release_stock(reserved: List[tuple]):
    for book_oid, quantity in reversed(reserved):
        collection(BOOKS).update_one(
            {"_id": book_oid},
            {"$inc": {"stock": quantity}, "$set": {"updated_at": utcnow()}},
        )
        logger.warning("Returned %s unit(s) of book %s after failed order", quantity, book_oid)


# ------------------------- Placement --------------------------
def _insert_order(payload: OrderCreate, lines: List[OrderLine], total: float) -> str:
    for attempt in range(1, ORDER_ID_ATTEMPTS + 1):
        order = Order(
            order_id=generate_order_id(),
            customer=payload.customer,
            books=lines,
            total_amount=total,
            payment_method=payload.payment_method,
            notes=payload.notes,
        )
        try:
            return create_document(ORDERS, order)
        except DuplicateKeyError:
            logger.warning("Order id %s already taken (attempt %d)", order.order_id, attempt)
    raise RuntimeError("Could not allocate a unique order id")


def place_order(payload: OrderCreate) -> dict:
    """Price, reserve and persist an order; returns the stored document"""
    reserved = []
    lines = []
    try:
        for item in payload.books:
            book_oid = to_object_id(item.book_id)
            book = collection(BOOKS).find_one({"_id": book_oid}) if book_oid else None
            if not book:
                raise NotFoundError(f"Book {item.book_id} not found")
            if not book.get("is_available", True):
                raise ValidationError(f"{book['title']} is not available")

            if _reserve_stock(book_oid, item.quantity) is None:
                logger.warning("Insufficient stock for %s: wanted %d", book_oid, item.quantity)
                raise InsufficientStockError(f"Insufficient stock for {book['title']}")
            reserved.append((book_oid, item.quantity))

            lines.append(OrderLine(
                book_id=str(book_oid),
                title=book["title"],
                quantity=item.quantity,
                price=unit_price(book),
            ))

        total = round(sum(line.price * line.quantity for line in lines), 2)
        new_id = _insert_order(payload, lines, total)
    except Exception:
        _release_stock(reserved)
        raise

    doc = serialize(get_document_by_id(ORDERS, new_id))
    logger.info("Order %s placed: %d line(s), total %.2f", doc["order_id"], len(lines), total)
    return doc


# ------------------------- Queries ----------------------------
def get_order(order_id: str) -> dict:
    doc = get_document_by_id(ORDERS, order_id)
    if not doc:
        raise NotFoundError("Order not found")
    return serialize(doc)


def track_order(order_id: str) -> dict:
    doc = collection(ORDERS).find_one({"order_id": order_id})
    if not doc:
        raise NotFoundError("Order not found")
    return serialize(doc)


def find_orders(status: Optional[str] = None, start_date: Optional[datetime] = None,
                end_date: Optional[datetime] = None) -> List[dict]:
    query = {}
    if status:
        query["order_status"] = status
    if start_date or end_date:
        query["created_at"] = {}
        if start_date:
            query["created_at"]["$gte"] = start_date
        if end_date:
            query["created_at"]["$lte"] = end_date
    docs = get_documents(ORDERS, query, sort=[("created_at", DESCENDING)])
    return [serialize(d) for d in docs]


# ------------------------- Lifecycle --------------------------
def update_order_status(order_id: str, new_status: str) -> dict:
    new_status = OrderStatus(new_status).value
    current_doc = get_document_by_id(ORDERS, order_id)
    if not current_doc:
        raise NotFoundError("Order not found")

    current = current_doc.get("order_status", OrderStatus.pending.value)
    if current == new_status:
        return serialize(current_doc)
    if not can_transition(current, new_status):
        raise InvalidStatusTransitionError(f"Cannot change order status from {current} to {new_status}")

    # Guard on the status we validated against
    updated = collection(ORDERS).find_one_and_update(
        {"_id": current_doc["_id"], "order_status": current},
        {"$set": {"order_status": new_status, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise InvalidStatusTransitionError("Order status changed meanwhile, reload and try again")
    logger.info("Order %s status %s -> %s", current_doc.get("order_id"), current, new_status)
    return serialize(updated)


def update_payment_status(order_id: str, payment_status: str) -> dict:
    payment_status = PaymentStatus(payment_status).value
    if not update_document(ORDERS, order_id, {"payment_status": payment_status}):
        raise NotFoundError("Order not found")
    doc = get_document_by_id(ORDERS, order_id)
    logger.info("Order %s payment status -> %s", doc.get("order_id"), payment_status)
    return serialize(doc)
