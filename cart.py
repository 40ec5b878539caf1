"""
Shopping cart: one document per user in the "cart" collection.

    {"user": ObjectId, "items": [{"_id": ObjectId, "product": ObjectId, "quantity": int}]}

Lines are unique by product and always hold quantity >= 1. Prices are not
stored here; they are read from the catalog whenever the cart is resolved.
Every mutation is a single conditional update on the cart document so that
concurrent requests for the same user cannot lose each other's writes.
"""

from typing import List, Optional, Tuple

import structlog
from bson.objectid import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from catalog import find_product, products_by_id
from database import now, to_dict
from errors import Internal, NotFound, ValidationFailed

logger = structlog.get_logger(__name__)

# add_item retries when a concurrent request changes the cart between its
# increment attempt and its append attempt.
_MAX_ATTEMPTS = 5


def _check_quantity(quantity: int):
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationFailed(
            [{"path": "quantity", "message": "Quantity must be a positive integer"}]
        )


def _ensure_cart(db, uid: ObjectId):
    ts = now()
    try:
        db["cart"].update_one(
            {"user": uid},
            {"$setOnInsert": {"items": [], "created_at": ts, "updated_at": ts}},
            upsert=True,
        )
    except DuplicateKeyError:
        # Another request created it first
        pass


def add_item(db, user_id: str, product_id: str, quantity: int = 1) -> dict:
    _check_quantity(quantity)
    product = find_product(db, product_id)
    if not product:
        raise NotFound("Product not found")

    uid, pid = ObjectId(user_id), product["_id"]
    _ensure_cart(db, uid)

    for _ in range(_MAX_ATTEMPTS):
        cart = db["cart"].find_one_and_update(
            {"user": uid, "items.product": pid},
            {"$inc": {"items.$.quantity": quantity}, "$set": {"updated_at": now()}},
            return_document=ReturnDocument.AFTER,
        )
        if cart:
            logger.debug("Cart line incremented", user_id=user_id, product_id=product_id, by=quantity)
            return to_dict(cart)

        line = {"_id": ObjectId(), "product": pid, "quantity": quantity}
        cart = db["cart"].find_one_and_update(
            {"user": uid, "items.product": {"$ne": pid}},
            {"$push": {"items": line}, "$set": {"updated_at": now()}},
            return_document=ReturnDocument.AFTER,
        )
        if cart:
            logger.debug("Cart line added", user_id=user_id, product_id=product_id, quantity=quantity)
            return to_dict(cart)

    raise Internal("Cart is changing too quickly, try again")


def resolve(db, user_id: str) -> Tuple[Optional[dict], List[Tuple[dict, Optional[dict]]]]:
    """Load the raw cart and pair every line with its live product (None if gone)."""
    cart = db["cart"].find_one({"user": ObjectId(user_id)})
    if not cart:
        return None, []
    products = products_by_id(db, [line["product"] for line in cart.get("items", [])])
    return cart, [(line, products.get(line["product"])) for line in cart.get("items", [])]


def get_cart(db, user_id: str) -> dict:
    cart, lines = resolve(db, user_id)
    if cart is None:
        return {"id": None, "user": user_id, "items": [], "subtotal": 0}

    items = []
    subtotal = 0.0
    for line, product in lines:
        items.append({
            "id": str(line["_id"]),
            "product": to_dict(product) if product else {"id": str(line["product"])},
            "quantity": line["quantity"],
            "available": product is not None,
        })
        if product:
            subtotal += product["price"] * line["quantity"]

    view = to_dict({k: v for k, v in cart.items() if k != "items"})
    view["items"] = items
    view["subtotal"] = subtotal
    return view


def update_quantity(db, user_id: str, line_id: str, quantity: int) -> dict:
    _check_quantity(quantity)
    lid = ObjectId(line_id)
    cart = db["cart"].find_one_and_update(
        {"user": ObjectId(user_id), "items._id": lid},
        {"$set": {"items.$.quantity": quantity, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not cart:
        raise NotFound("Item not found")
    return to_dict(cart)


def remove_item(db, user_id: str, line_id: str) -> dict:
    lid = ObjectId(line_id)
    cart = db["cart"].find_one_and_update(
        {"user": ObjectId(user_id), "items._id": lid},
        {"$pull": {"items": {"_id": lid}}, "$set": {"updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not cart:
        raise NotFound("Item not found")
    logger.debug("Cart line removed", user_id=user_id, line_id=line_id)
    return to_dict(cart)


def remove_lines(db, user_id: str, lines: List[dict]) -> int:
    """Pull ordered lines out of the cart.

    A line is pulled only while it still holds the ordered quantity, so a line
    added or re-quantified after the cart was read stays in the cart.
    Returns the number of lines removed.
    """
    uid = ObjectId(user_id)
    removed = 0
    for line in lines:
        ordered = {"_id": line["_id"], "quantity": line["quantity"]}
        res = db["cart"].update_one(
            {"user": uid, "items": {"$elemMatch": ordered}},
            {
                "$pull": {"items": ordered},
                "$set": {"updated_at": now()},
            },
        )
        removed += res.modified_count
    return removed


def clear(db, user_id: str) -> Tuple[dict, bool]:
    """Empty the cart. Returns the cart and whether it was already empty."""
    before = db["cart"].find_one_and_update(
        {"user": ObjectId(user_id)},
        {"$set": {"items": [], "updated_at": now()}},
        return_document=ReturnDocument.BEFORE,
    )
    if before is None:
        return {"id": None, "user": user_id, "items": []}, True

    already_empty = not before.get("items")
    cart = to_dict(before)
    cart["items"] = []
    return cart, already_empty
