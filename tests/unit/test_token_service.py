"""Tests for TokenService."""

import time

import jwt as pyjwt
import pytest

from studychat.core.config import settings
from studychat.core.exceptions import InvalidTokenError, TokenExpiredError
from studychat.services.token_service import TokenService


@pytest.fixture
def ts() -> TokenService:
    return TokenService()


def _sign(payload: dict) -> str:
    return pyjwt.encode(
        payload,
        settings.auth.secret_key.get_secret_value(),
        algorithm=settings.auth.algorithm,
    )


class TestCreateTokens:
    """Tests for token creation."""

    def test_access_token_decodes_correctly(self, ts: TokenService) -> None:
        token = ts.create_access_token(user_id=42, email="test@test.com", role="user")
        payload = ts.decode_token(token)
        assert payload.sub == "42"
        assert payload.email == "test@test.com"
        assert payload.role == "user"
        assert payload.type == "access"
        assert payload.jti

    def test_tokens_are_unique(self, ts: TokenService) -> None:
        first = ts.create_access_token(user_id=1, email="a@b.com", role="user")
        second = ts.create_access_token(user_id=1, email="a@b.com", role="user")
        assert ts.decode_token(first).jti != ts.decode_token(second).jti


class TestDecodeToken:
    """Tests for token decoding."""

    def test_invalid_token_raises(self, ts: TokenService) -> None:
        with pytest.raises(InvalidTokenError):
            ts.decode_token("not.a.valid.token")

    def test_expired_token_raises(self, ts: TokenService) -> None:
        token = _sign(
            {
                "sub": "1",
                "email": "a@b.com",
                "role": "user",
                "type": "access",
                "jti": "expired",
                "exp": int(time.time()) - 10,
            }
        )
        with pytest.raises(TokenExpiredError):
            ts.decode_token(token)

    def test_wrong_signature_raises(self, ts: TokenService) -> None:
        token = pyjwt.encode(
            {"sub": "1", "type": "access", "exp": int(time.time()) + 60},
            "another-secret-that-is-also-long-enough!!",
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            ts.decode_token(token)

    def test_non_access_token_raises(self, ts: TokenService) -> None:
        token = _sign(
            {
                "sub": "1",
                "email": "a@b.com",
                "role": "user",
                "type": "refresh",
                "jti": "r",
                "exp": int(time.time()) + 60,
            }
        )
        with pytest.raises(InvalidTokenError):
            ts.decode_token(token)

    def test_missing_claim_raises(self, ts: TokenService) -> None:
        token = _sign({"sub": "1", "type": "access", "exp": int(time.time()) + 60})
        with pytest.raises(InvalidTokenError):
            ts.decode_token(token)
