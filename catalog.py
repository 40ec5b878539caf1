"""
Product catalog.

Products are never removed from the collection; DELETE sets is_deleted and the
product disappears from listings and lookups. Orders keep pointing at it.
"""

import re
from typing import Dict, Iterable, List, Optional

import structlog
from bson.objectid import ObjectId
from pymongo import ASCENDING, DESCENDING

from database import create_document, now, to_dict
from errors import InvalidState, NotFound
from schemas import ProductStatus

logger = structlog.get_logger(__name__)

NOT_DELETED = {"is_deleted": {"$ne": True}}

SORT_FIELDS = ("name", "price", "created_at", "category")


def _new_product_doc(seller_id: str, data: dict) -> dict:
    doc = dict(data)
    doc["created_by"] = ObjectId(seller_id)
    doc["is_deleted"] = False
    return doc


def create_product(db, seller_id: str, data: dict) -> dict:
    doc = create_document(db, "product", _new_product_doc(seller_id, data))
    logger.info("Product created", product_id=str(doc["_id"]), seller_id=seller_id)
    return to_dict(doc)


def create_products(db, seller_id: str, items: List[dict]) -> List[dict]:
    if not items:
        raise InvalidState("No products to insert")
    timestamp = now()
    docs = []
    for data in items:
        doc = _new_product_doc(seller_id, data)
        doc["created_at"] = doc["updated_at"] = timestamp
        docs.append(doc)
    # insert_many sets _id on each dict in place
    db["product"].insert_many(docs)
    logger.info("Products inserted", count=len(docs), seller_id=seller_id)
    return [to_dict(d) for d in docs]


def find_product(db, product_id: str) -> Optional[dict]:
    """Raw product document, or None when missing or soft-deleted."""
    return db["product"].find_one({"_id": ObjectId(product_id), **NOT_DELETED})


def products_by_id(db, product_ids: Iterable) -> Dict[ObjectId, dict]:
    ids = list({ObjectId(p) for p in product_ids})
    if not ids:
        return {}
    return {p["_id"]: p for p in db["product"].find({"_id": {"$in": ids}, **NOT_DELETED})}


def get_product(db, product_id: str, user_id: Optional[str] = None) -> dict:
    product = find_product(db, product_id)
    if not product:
        raise NotFound("Product not found")
    result = to_dict(product)

    if user_id is not None:
        # Personalized view for logged-in callers
        cart = db["cart"].find_one({"user": ObjectId(user_id)}, {"items": 1})
        line = next(
            (i for i in (cart or {}).get("items", []) if i["product"] == product["_id"]),
            None,
        )
        result["in_cart"] = line is not None
        result["cart_quantity"] = line["quantity"] if line else 0
    return result


def list_products(
    db,
    search: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: str = "asc",
    category: Optional[str] = None,
    brand: Optional[str] = None,
    page: int = 1,
    page_size: int = 10,
) -> dict:
    query = dict(NOT_DELETED)
    if search:
        query["name"] = {"$regex": re.escape(search), "$options": "i"}
    if category:
        query["category"] = category
    if brand:
        query["brand"] = brand

    if sort_by in SORT_FIELDS:
        sort = [(sort_by, DESCENDING if sort_order == "desc" else ASCENDING)]
    else:
        sort = [("created_at", DESCENDING)]

    total = db["product"].count_documents(query)
    cursor = db["product"].find(query).sort(sort).skip(page_size * (page - 1)).limit(page_size)
    products = [to_dict(p) for p in cursor]
    return {
        "products": products,
        "total_records": total,
        "records_returned": len(products),
        "page": page,
        "page_size": page_size,
    }


def update_product(db, product_id: str, updates: dict) -> dict:
    if not updates:
        raise InvalidState("Nothing to update")
    updates = dict(updates, updated_at=now())
    res = db["product"].update_one({"_id": ObjectId(product_id), **NOT_DELETED}, {"$set": updates})
    if res.matched_count == 0:
        raise NotFound("Product not found")
    logger.info("Product updated", product_id=product_id, fields=sorted(updates))
    return to_dict(find_product(db, product_id))


def delete_product(db, product_id: str) -> None:
    res = db["product"].update_one(
        {"_id": ObjectId(product_id), **NOT_DELETED},
        {"$set": {"is_deleted": True, "status": ProductStatus.INACTIVE.value, "updated_at": now()}},
    )
    if res.matched_count == 0:
        raise NotFound("Product not found")
    logger.info("Product deleted", product_id=product_id)
