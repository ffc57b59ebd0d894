"""
Authentication module for Task Service.
Resolves the requesting user by verifying the bearer token with the Auth Service.
"""
import logging
from typing import Optional, Dict, Any
import httpx
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .config import get_settings

# Configure logging
logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(
    scheme_name="Bearer Token",
    description="JWT Bearer token from Auth Service"
)

# Get settings
settings = get_settings()


class CurrentUser:
    """Represents the current authenticated user."""

    def __init__(self, user_id: int, email: Optional[str] = None, **kwargs):
        self.user_id = user_id
        self.email = email
        self.extra_data = kwargs

    def __str__(self):
        return f"User(id={self.user_id}, email={self.email})"

    def __repr__(self):
        return self.__str__()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CurrentUser":
        """Create CurrentUser from the Auth Service user payload."""
        return cls(
            user_id=int(data["id"]),
            email=data.get("email"),
            **{k: v for k, v in data.items() if k not in ["id", "email"]}
        )


class AuthService:
    """Service client for Auth Service integration."""

    def __init__(self):
        self.base_url = settings.auth_service_url
        self.timeout = settings.auth_service_timeout
        self.retries = settings.auth_service_retries

    async def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Verify JWT token with Auth Service.

        Args:
            token: JWT token to verify

        Returns:
            dict: User information if token is valid, None otherwise
        """
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json"
        }

        for attempt in range(self.retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    logger.debug(f"Verifying token with Auth Service (attempt {attempt + 1})")

                    response = await client.get(
                        f"{self.base_url}/auth/verify",
                        headers=headers
                    )

                if response.status_code == 200:
                    return response.json()
                if response.status_code == 401:
                    logger.warning("Token verification failed: invalid token")
                    return None
                logger.warning(f"Auth Service returned status {response.status_code}")

            except httpx.TimeoutException:
                logger.warning(f"Auth Service timeout (attempt {attempt + 1})")
            except httpx.RequestError as e:
                logger.warning(f"Auth Service connection error (attempt {attempt + 1}): {e}")

        logger.error("Auth Service verification failed after all retries")
        return None

    async def health_check(self) -> bool:
        """
        Check if Auth Service is healthy.

        Returns:
            bool: True if Auth Service is healthy
        """
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                response = await client.get(f"{self.base_url}/health")
                return response.status_code == 200
        except httpx.RequestError as e:
            logger.error(f"Auth Service health check failed: {e}")
            return False


# Global auth service instance
auth_service = AuthService()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CurrentUser:
    """
    Dependency to get current authenticated user.

    Raises:
        HTTPException: If token is invalid or user not found
    """
    user_info = await auth_service.verify_token(credentials.credentials)
    if not user_info or "id" not in user_info:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    current_user = CurrentUser.from_dict(user_info)
    logger.debug(f"Authenticated user: {current_user}")
    return current_user
