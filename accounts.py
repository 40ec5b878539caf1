"""User registration, login and profile."""

from typing import Optional

import structlog
from bson.objectid import ObjectId
from pymongo.errors import DuplicateKeyError

from database import create_document, now, to_dict
from errors import Conflict, NotFound, Unauthenticated
from identity import hash_password, issue_token, verify_password
from schemas import Address, User

logger = structlog.get_logger(__name__)


def _public(user: dict) -> dict:
    d = to_dict(user)
    d.pop("password", None)
    return d


def register(db, name: str, email: str, password: str, is_seller: bool = False) -> dict:
    email = email.strip().lower()
    if db["user"].find_one({"email": email}):
        raise Conflict("Email already registered")

    user = User(name=name.strip(), email=email, password=hash_password(password), is_seller=is_seller)
    try:
        doc = create_document(db, "user", user.model_dump())
    except DuplicateKeyError:
        raise Conflict("Email already registered")

    logger.info("User registered", user_id=str(doc["_id"]), is_seller=is_seller)
    return _public(doc)


def login(db, email: str, password: str) -> str:
    user = db["user"].find_one({"email": email.strip().lower()})
    if not user or not verify_password(user["password"], password):
        logger.info("Login failed", email=email)
        raise Unauthenticated("Invalid email or password")
    return issue_token(str(user["_id"]), user["email"])


def get_profile(db, user_id: str) -> dict:
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise NotFound("User not found")
    return _public(user)


def update_profile(db, user_id: str, name: Optional[str] = None, address: Optional[Address] = None) -> dict:
    updates = {}
    if name is not None:
        updates["name"] = name.strip()
    if address is not None:
        updates["address"] = address.model_dump()
    if not updates:
        return get_profile(db, user_id)

    updates["updated_at"] = now()
    res = db["user"].update_one({"_id": ObjectId(user_id)}, {"$set": updates})
    if res.matched_count == 0:
        raise NotFound("User not found")
    return get_profile(db, user_id)
