"""Tests for password hashing, bearer tokens and the seller check."""

import pytest
from bson.objectid import ObjectId

from errors import Forbidden, NotFound, Unauthenticated
from identity import (
    authenticate,
    authenticate_optional,
    authorize_seller,
    hash_password,
    issue_token,
    verify_password,
)

USER_ID = str(ObjectId())


class TestPasswords:
    def test_hash_is_not_the_password(self):
        hashed = hash_password("secret1")
        assert hashed != "secret1"
        assert verify_password(hashed, "secret1")

    def test_wrong_password(self):
        assert not verify_password(hash_password("secret1"), "secret2")

    def test_garbage_hash(self):
        assert not verify_password("not-a-hash", "secret1")


class TestAuthenticate:
    def test_valid_bearer_token(self):
        token = issue_token(USER_ID, "a@example.com")
        assert authenticate(f"Bearer {token}") == USER_ID

    @pytest.mark.parametrize("credential", [None, ""])
    def test_missing_credential(self, credential):
        with pytest.raises(Unauthenticated):
            authenticate(credential)

    @pytest.mark.parametrize("credential", ["Bearer", "Bearer   ", "Token abc", "abc.def.ghi"])
    def test_wrong_scheme_or_shape(self, credential):
        with pytest.raises(Unauthenticated):
            authenticate(credential)

    def test_malformed_token(self):
        with pytest.raises(Unauthenticated):
            authenticate("Bearer not-a-token")

    def test_tampered_payload(self):
        token = issue_token(USER_ID, "a@example.com").split(".")
        other = issue_token(str(ObjectId()), "b@example.com").split(".")
        forged = f"{token[0]}.{other[1]}.{token[2]}"
        with pytest.raises(Unauthenticated):
            authenticate(f"Bearer {forged}")

    def test_expired_token(self):
        token = issue_token(USER_ID, "a@example.com", ttl=-10)
        with pytest.raises(Unauthenticated):
            authenticate(f"Bearer {token}")

    def test_token_signed_with_another_secret(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET", "another-secret")
        token = issue_token(USER_ID, "a@example.com")
        monkeypatch.setenv("JWT_SECRET", "test-secret")
        with pytest.raises(Unauthenticated):
            authenticate(f"Bearer {token}")


class TestAuthenticateOptional:
    def test_valid_token(self):
        token = issue_token(USER_ID, "a@example.com")
        assert authenticate_optional(f"Bearer {token}") == USER_ID

    @pytest.mark.parametrize("credential", [None, "", "Bearer junk"])
    def test_never_fails(self, credential):
        assert authenticate_optional(credential) is None

    def test_missing_secret_means_anonymous(self, monkeypatch):
        token = issue_token(USER_ID, "a@example.com")
        monkeypatch.delenv("JWT_SECRET")

        assert authenticate_optional(f"Bearer {token}") is None


class TestAuthorizeSeller:
    def test_seller(self, db, seller):
        user = authorize_seller(db, seller["id"])
        assert str(user["_id"]) == seller["id"]
        assert "password" not in user

    def test_buyer_is_forbidden(self, db, buyer):
        with pytest.raises(Forbidden):
            authorize_seller(db, buyer["id"])

    def test_unknown_user(self, db):
        with pytest.raises(NotFound):
            authorize_seller(db, str(ObjectId()))
