"""
Identity gate: password hashing, bearer tokens and the seller check.

Tokens are compact HS256 JWTs: base64url(header).base64url(payload).base64url(sig),
signed with JWT_SECRET. Payload carries sub (user id), email, iat and exp.
"""

import base64
import json
import os
import time
from typing import Optional

import structlog
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from bson.objectid import ObjectId
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac
from fastapi import Depends, Header

from database import get_db
from errors import Forbidden, Internal, NotFound, Unauthenticated

logger = structlog.get_logger(__name__)

TOKEN_TTL_SECONDS = int(os.getenv("TOKEN_TTL_SECONDS", 3600))

_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    try:
        return _hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


# Token helpers

def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64decode(data: str) -> bytes:
    padding = -len(data) % 4
    return base64.urlsafe_b64decode(data + "=" * padding)


def _signing_key() -> bytes:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise Internal("JWT_SECRET is not configured")
    return secret.encode()


def _sign(message: bytes) -> bytes:
    h = hmac.HMAC(_signing_key(), hashes.SHA256())
    h.update(message)
    return h.finalize()


def issue_token(user_id: str, email: str, ttl: Optional[int] = None) -> str:
    now = int(time.time())
    header = {"alg": "HS256", "typ": "JWT"}
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": now,
        "exp": now + (ttl if ttl is not None else TOKEN_TTL_SECONDS),
    }
    header_b64 = _b64encode(json.dumps(header, separators=(",", ":")).encode())
    payload_b64 = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
    signature = _sign(f"{header_b64}.{payload_b64}".encode())
    return f"{header_b64}.{payload_b64}.{_b64encode(signature)}"


def decode_token(token: str) -> dict:
    """Verify signature and expiry and return the payload."""
    try:
        header_b64, payload_b64, signature_b64 = token.split(".")
        header = json.loads(_b64decode(header_b64))
        signature = _b64decode(signature_b64)
    except ValueError:
        raise Unauthenticated("Invalid token format")

    if not isinstance(header, dict) or header.get("alg") != "HS256":
        raise Unauthenticated("Invalid token format")

    h = hmac.HMAC(_signing_key(), hashes.SHA256())
    h.update(f"{header_b64}.{payload_b64}".encode())
    try:
        h.verify(signature)
    except InvalidSignature:
        raise Unauthenticated("Invalid or expired token")

    try:
        payload = json.loads(_b64decode(payload_b64))
    except ValueError:
        raise Unauthenticated("Invalid token format")
    if not isinstance(payload, dict):
        raise Unauthenticated("Invalid token format")

    exp = payload.get("exp")
    if not isinstance(exp, int) or exp < int(time.time()):
        raise Unauthenticated("Invalid or expired token")
    if not ObjectId.is_valid(payload.get("sub")):
        raise Unauthenticated("Invalid or expired token")
    return payload


def authenticate(credential: Optional[str]) -> str:
    """Resolve an ``Authorization`` header value to a user id."""
    if not credential:
        raise Unauthenticated("No token provided")
    scheme, _, token = credential.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Invalid token format")
    return decode_token(token.strip())["sub"]


def authenticate_optional(credential: Optional[str]) -> Optional[str]:
    """Like authenticate, but any failure means an anonymous caller."""
    try:
        return authenticate(credential)
    except Unauthenticated:
        return None
    except Internal as e:
        logger.warning("Treating caller as anonymous", reason=e.message)
        return None


def authorize_seller(db, user_id: str) -> dict:
    user = db["user"].find_one({"_id": ObjectId(user_id)}, {"password": 0})
    if not user:
        raise NotFound("User not found")
    if not user.get("is_seller"):
        logger.info("Seller access denied", user_id=user_id)
        raise Forbidden("Seller access required")
    return user


# FastAPI dependencies

def current_subject(authorization: Optional[str] = Header(None)) -> str:
    return authenticate(authorization)


def optional_subject(authorization: Optional[str] = Header(None)) -> Optional[str]:
    return authenticate_optional(authorization)


def current_seller(user_id: str = Depends(current_subject), db=Depends(get_db)) -> dict:
    return authorize_seller(db, user_id)
