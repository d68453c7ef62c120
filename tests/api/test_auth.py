"""
Tests for token issuance, verification and the current-user dependency.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import jwt
import pytest
from bson import ObjectId
from fastapi.security import HTTPAuthorizationCredentials

from api.auth import TokenManager, get_current_user, hash_password, verify_password
from api.models import UserResponse
from catalog.errors import AuthenticationError

SECRET = "test-secret-key-for-signing-tokens-in-tests"


@pytest.fixture
def tokens():
    """Token manager with a fixed secret."""
    return TokenManager(SECRET, expire_minutes=5)


def bearer(token):
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestPasswords:
    """Test cases for password hashing."""

    def test_hash_round_trip(self):
        password_hash = hash_password("s3cret!")

        assert password_hash != "s3cret!"
        assert verify_password(password_hash, "s3cret!")
        assert not verify_password(password_hash, "wrong")


class TestTokenManager:
    """Test cases for TokenManager."""

    def test_token_carries_user_id(self, tokens):
        user_id = str(ObjectId())
        assert tokens.verify_token(tokens.create_token(user_id)) == user_id

    def test_expired_token(self, tokens):
        expired = jwt.encode(
            {"id": str(ObjectId()), "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            SECRET,
            algorithm="HS256"
        )

        with pytest.raises(AuthenticationError) as exc_info:
            tokens.verify_token(expired)

        assert exc_info.value.message == "Not authorized, token expired"

    def test_wrong_signature(self, tokens):
        forged = TokenManager("another-secret-key-for-signing-forged-tokens").create_token(str(ObjectId()))

        with pytest.raises(AuthenticationError) as exc_info:
            tokens.verify_token(forged)

        assert exc_info.value.message == "Not authorized, invalid token"

    def test_garbage_token(self, tokens):
        with pytest.raises(AuthenticationError) as exc_info:
            tokens.verify_token("not.a.token")

        assert exc_info.value.message == "Not authorized, invalid token"

    def test_token_without_user_id(self, tokens):
        token = jwt.encode({"sub": "someone"}, SECRET, algorithm="HS256")

        with pytest.raises(AuthenticationError) as exc_info:
            tokens.verify_token(token)

        assert exc_info.value.message == "Not authorized, invalid token"


class TestGetCurrentUser:
    """Test cases for the get_current_user dependency."""

    @pytest.fixture
    def user(self):
        return UserResponse(id=str(ObjectId()), name="Alice", email="alice@example.com")

    @pytest.fixture
    def service(self, user):
        service = AsyncMock()
        service.get_user_by_id.return_value = user
        return service

    @pytest.mark.asyncio
    async def test_resolves_user(self, tokens, service, user):
        result = await get_current_user(bearer(tokens.create_token(user.id)), tokens, service)

        assert result == user
        service.get_user_by_id.assert_awaited_once_with(user.id)

    @pytest.mark.asyncio
    async def test_missing_credentials(self, tokens, service):
        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_user(None, tokens, service)

        assert exc_info.value.message == "Not authorized, no token provided"
        service.get_user_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_user(self, tokens, service):
        service.get_user_by_id.return_value = None

        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_user(bearer(tokens.create_token(str(ObjectId()))), tokens, service)

        assert exc_info.value.message == "Not authorized, user not found"

    @pytest.mark.asyncio
    async def test_storage_failure_is_authentication_failure(self, tokens, service, user):
        service.get_user_by_id.side_effect = RuntimeError("connection reset")

        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_user(bearer(tokens.create_token(user.id)), tokens, service)

        assert exc_info.value.message == "Not authorized, authentication failed"
        assert exc_info.value.status_code == 401
