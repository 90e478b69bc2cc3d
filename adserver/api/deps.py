"""
Dependencies for authentication, database sessions, and injected collaborators.
"""
import secrets
from typing import Generator, Optional
from fastapi import Depends, HTTPException, status, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.orm import Session
from adserver import config
from adserver.database import SessionLocal
from adserver.models.db import User
from adserver.models.db.enums import UserRole
from adserver.services.notifications import NotificationService
from adserver.services.pricing import PricingPolicy, default_pricing
from adserver.utils import get_logger

logger = get_logger(__name__)
security = HTTPBearer()

def _key_prefix(api_key: str) -> str:
    return api_key[:10] + "..." if len(api_key) > 10 else api_key

def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()

def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Extract and validate user from API key.

    Raises:
        HTTPException: If API key is invalid or user is inactive
    """
    api_key = credentials.credentials

    user = db.scalars(
        select(User).where(User.api_key == api_key, User.is_active.is_(True))
    ).first()

    if not user:
        logger.warning(
            "Authentication failed: invalid or inactive API key",
            api_key_prefix=_key_prefix(api_key)
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or inactive API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug(
        "User authenticated",
        user_id=user.id,
        user_role=user.role.value
    )
    return user

def require_admin(
    current_user: User = Depends(get_current_user)
) -> User:
    """Dependency that requires ADMIN role."""
    if current_user.role != UserRole.ADMIN:
        logger.warning(
            "Access denied: admin required",
            user_id=current_user.id,
            user_role=current_user.role.value
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user

def verify_webhook_token(
    x_webhook_token: Optional[str] = Header(None, alias="X-Webhook-Token")
) -> bool:
    """Shared-secret check for the payment relay. Signature verification happens upstream."""
    expected = config.PAYMENT_WEBHOOK_TOKEN
    if not expected:
        logger.error("Payment webhook called but PAYMENT_WEBHOOK_TOKEN is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment webhook not configured"
        )
    if not x_webhook_token or not secrets.compare_digest(x_webhook_token, expected):
        logger.warning(
            "Payment webhook rejected: invalid token",
            provided_token_prefix=_key_prefix(x_webhook_token or "")
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook token"
        )
    return True

def get_pricing() -> PricingPolicy:
    """Pricing policy handed to the approval transition."""
    return default_pricing()

def get_notifier(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)

def get_pagination_params(
    limit: int = 50,
    offset: int = 0
) -> dict:
    """
    Validate and return pagination parameters.

    Args:
        limit: Maximum number of items to return (1-500)
        offset: Number of items to skip (>= 0)
    """
    if limit < 1 or limit > 500:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Limit must be between 1 and 500"
        )

    if offset < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Offset must be >= 0"
        )

    return {"limit": limit, "offset": offset}
