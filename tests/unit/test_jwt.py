"""Tests for tenant-bound access tokens."""

import jwt
import pytest

from ednova.auth.jwt import create_access_token, verify_token
from ednova.config import get_settings


class TestAccessTokens:
    def test_round_trip_claims(self):
        token = create_access_token(7, tenant="acme", role="ADMIN", email="a@example.com")
        payload = verify_token(token, tenant="acme")
        assert payload["sub"] == "7"
        assert payload["tenant"] == "acme"
        assert payload["role"] == "ADMIN"
        assert payload["iss"] == get_settings().jwt_issuer

    def test_rejected_on_other_tenant(self):
        token = create_access_token(7, tenant="acme", role="USER", email="a@example.com")
        with pytest.raises(jwt.InvalidTokenError, match="tenant"):
            verify_token(token, tenant="beta")

    def test_wrong_type_rejected(self):
        token = create_access_token(7, tenant="acme", role="USER", email="a@example.com")
        with pytest.raises(jwt.InvalidTokenError, match="type"):
            verify_token(token, tenant="acme", expected_type="refresh")

    def test_tampered_signature_rejected(self):
        token = create_access_token(7, tenant="acme", role="USER", email="a@example.com")
        forged = jwt.encode(
            jwt.decode(token, options={"verify_signature": False}),
            "another-secret-key-that-is-long-enough-0123",
            algorithm="HS256",
        )
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(forged, tenant="acme")
