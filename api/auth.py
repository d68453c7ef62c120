"""
Bearer token authentication for the FastAPI API.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from werkzeug.security import check_password_hash, generate_password_hash

from api.config import config
from api.database import APIDatabaseService, get_db_service
from api.models import UserResponse
from catalog.errors import AuthenticationError
from catalog.rules import is_valid_object_id

logger = structlog.get_logger(__name__)

# Missing credentials are reported by get_current_user, not by HTTPBearer
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a plain text password for storage."""
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """Check a plain text password against a stored hash."""
    return check_password_hash(password_hash, password)


class TokenManager:
    """Issues and verifies signed bearer tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 60):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def create_token(self, user_id: str) -> str:
        """
        Create a token identifying a user.

        Args:
            user_id: User identifier

        Returns:
            Encoded token
        """
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=self.expire_minutes)
        payload = {"id": str(user_id), "exp": expires_at}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> str:
        """
        Verify a token and return the user identifier it carries.

        Raises:
            AuthenticationError: If the token is expired, malformed or has no user id
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Not authorized, token expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Not authorized, invalid token")

        user_id = payload.get("id")
        if not is_valid_object_id(user_id):
            raise AuthenticationError("Not authorized, invalid token")
        return user_id


token_manager = TokenManager(
    secret=config.jwt_secret,
    algorithm=config.jwt_algorithm,
    expire_minutes=config.access_token_expire_minutes
)


def get_token_manager() -> TokenManager:
    """Dependency returning the process-wide token manager."""
    return token_manager


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tokens: TokenManager = Depends(get_token_manager),
    db_service: APIDatabaseService = Depends(get_db_service)
) -> UserResponse:
    """
    Resolve the actor from the Authorization header.

    Returns:
        The authenticated user

    Raises:
        AuthenticationError: With the reason the credential was rejected
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authorized, no token provided")

    try:
        user_id = tokens.verify_token(credentials.credentials)
        user = await db_service.get_user_by_id(user_id)
    except AuthenticationError as e:
        logger.warning("Authentication failed", reason=e.message)
        raise
    except Exception as e:
        logger.error("Authentication error", error=str(e))
        raise AuthenticationError("Not authorized, authentication failed")

    if user is None:
        logger.warning("Token for unknown user", user_id=user_id)
        raise AuthenticationError("Not authorized, user not found")

    return user
