"""
MongoDB access for the store.

The client is created once at import time from DATABASE_URL / DATABASE_NAME.
When DATABASE_URL is unset `db` stays None and data routes report that the
database is not configured.
"""

import os
from datetime import datetime, timezone

import structlog
from bson.objectid import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient

from errors import Internal

logger = structlog.get_logger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "electronics_store")

db = None
if DATABASE_URL:
    db = MongoClient(DATABASE_URL)[DATABASE_NAME]


def get_db():
    """FastAPI dependency returning the configured database."""
    if db is None:
        raise Internal("Database not configured")
    return db


def ensure_indexes(database):
    database["user"].create_index([("email", ASCENDING)], unique=True)
    # One cart per user; add_item relies on this to serialize cart creation.
    database["cart"].create_index([("user", ASCENDING)], unique=True)
    database["order"].create_index([("user", ASCENDING), ("created_at", DESCENDING)])
    database["product"].create_index([("is_deleted", ASCENDING), ("created_at", DESCENDING)])


def now():
    return datetime.now(timezone.utc)


def create_document(database, collection_name: str, data: dict) -> dict:
    doc = dict(data)
    doc.setdefault("created_at", now())
    doc["updated_at"] = doc["created_at"]
    result = database[collection_name].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def to_dict(doc):
    """Render a stored document as JSON-ready data (ObjectId -> str, _id -> id)."""
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, list):
        return [to_dict(v) for v in doc]
    if not isinstance(doc, dict):
        return doc
    d = {}
    for key, value in doc.items():
        if key == "_id":
            key = "id"
        d[key] = to_dict(value)
    return d


if db is not None:
    try:
        ensure_indexes(db)
    except Exception as e:
        logger.warning("Could not create indexes", error=str(e)[:80])
