"""
Orders: placing an order from the cart and moving it through its statuses.

An order is written once. Only `status` changes afterwards; line prices and
total_price are copied from the catalog at placement and never recomputed.
"""

from typing import List

import structlog
from bson.objectid import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

import cart as cart_engine
from catalog import products_by_id
from database import create_document, now, to_dict
from errors import CartNotCleared, InvalidState, InvalidTransition, NotFound
from identity import authorize_seller
from schemas import OrderStatus

logger = structlog.get_logger(__name__)

# Forward path; an order may move ahead any number of steps but never back.
_PROGRESSION = [
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]

_CANCELLABLE = {OrderStatus.PENDING, OrderStatus.PROCESSING}


def _build_transitions():
    transitions = {status: set() for status in OrderStatus}
    for i, status in enumerate(_PROGRESSION):
        transitions[status].update(_PROGRESSION[i + 1:])
    for status in _CANCELLABLE:
        transitions[status].add(OrderStatus.CANCELLED)
    return transitions


VALID_TRANSITIONS = _build_transitions()


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def place_order(db, user_id: str) -> dict:
    cart, lines = cart_engine.resolve(db, user_id)
    if cart is None or not lines:
        raise InvalidState("Cart is empty")

    missing = [str(line["product"]) for line, product in lines if product is None]
    if missing:
        raise InvalidState(f"Products no longer available: {', '.join(missing)}")

    items = [
        {
            "product": product["_id"],
            "quantity": line["quantity"],
            "price": product["price"],
            "seller_id": product.get("created_by"),
        }
        for line, product in lines
    ]
    total_price = sum(i["price"] * i["quantity"] for i in items)

    uid = ObjectId(user_id)
    buyer = db["user"].find_one({"_id": uid}, {"address": 1}) or {}
    doc = create_document(db, "order", {
        "user": uid,
        "items": items,
        "address": buyer.get("address"),
        "total_price": total_price,
        "status": OrderStatus.PENDING.value,
    })
    order = to_dict(doc)
    logger.info("Order placed", order_id=order["id"], user_id=user_id, total_price=total_price)

    try:
        removed = cart_engine.remove_lines(db, user_id, [line for line, _ in lines])
    except PyMongoError:
        logger.exception("Order created but cart not cleared", order_id=order["id"], user_id=user_id)
        raise CartNotCleared(order)
    if removed < len(lines):
        logger.warning(
            "Cart lines changed while ordering, left in cart",
            order_id=order["id"],
            user_id=user_id,
            kept=len(lines) - removed,
        )
    return order


def _with_product_names(db, orders: List[dict]) -> List[dict]:
    products = products_by_id(db, [i["product"] for o in orders for i in o.get("items", [])])
    for o in orders:
        for item in o.get("items", []):
            product = products.get(item["product"])
            item["name"] = product.get("name") if product else None
    return orders


def list_orders(db, user_id: str, is_seller: bool) -> List[dict]:
    if is_seller:
        orders = list(db["order"].find().sort("created_at", DESCENDING))
        buyers = {
            u["_id"]: {"id": str(u["_id"]), "name": u.get("name"), "email": u.get("email")}
            for u in db["user"].find(
                {"_id": {"$in": list({o["user"] for o in orders})}},
                {"name": 1, "email": 1},
            )
        }
        for o in orders:
            o["buyer"] = buyers.get(o["user"])
    else:
        orders = list(db["order"].find({"user": ObjectId(user_id)}).sort("created_at", DESCENDING))
    return [to_dict(o) for o in _with_product_names(db, orders)]


def get_order(db, order_id: str, user_id: str, is_seller: bool) -> dict:
    query = {"_id": ObjectId(order_id)}
    if not is_seller:
        # Someone else's order looks exactly like a missing one
        query["user"] = ObjectId(user_id)
    order = db["order"].find_one(query)
    if not order:
        raise NotFound("Order not found")
    return to_dict(_with_product_names(db, [order])[0])


def update_status(db, order_id: str, new_status: OrderStatus, acting_user_id: str) -> dict:
    """Move an order to `new_status`. Only sellers may do this."""
    seller = authorize_seller(db, acting_user_id)
    oid = ObjectId(order_id)
    current = db["order"].find_one({"_id": oid}, {"status": 1})
    if not current:
        raise NotFound("Order not found")
    if not can_transition(OrderStatus(current["status"]), new_status):
        raise InvalidTransition(f"Cannot change status from {current['status']} to {new_status.value}")

    # Only applies if nobody changed the status since it was read
    order = db["order"].find_one_and_update(
        {"_id": oid, "status": current["status"]},
        {"$set": {"status": new_status.value, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not order:
        raise InvalidTransition("Order status changed meanwhile, reload and try again")

    logger.info(
        "Order status updated",
        order_id=order_id,
        status=new_status.value,
        previous=current["status"],
        seller_id=str(seller["_id"]),
    )
    return to_dict(order)
