"""
FastAPI dependencies for authentication, authorization and service wiring.

This module provides dependency functions for JWT authentication, role-based
access control, database session management, and construction of the order
services around the request's session.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recycletrade.core.logging import get_logger
from recycletrade.core.security import TokenError, get_token_user_id
from recycletrade.database.connection import get_db
from recycletrade.database.models.user import User, UserRole
from recycletrade.services.notifications.gateway import NotificationGateway
from recycletrade.services.orders.factory import OrderServices, build_order_services
from recycletrade.services.payments.stripe_client import StripeClient

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Validate JWT token and retrieve current authenticated user.

    Args:
        credentials: HTTP Bearer token from Authorization header
        db: Database session

    Returns:
        User: Authenticated user object

    Raises:
        HTTPException: 401 if token is invalid, expired, or user not found
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    try:
        user_id = get_token_user_id(credentials.credentials)
    except TokenError as e:
        logger.warning(
            "Authentication failed: token rejected",
            code=e.code,
        )
        raise credentials_exception

    try:
        user = await db.get(User, user_id)
    except SQLAlchemyError as e:
        logger.error(
            "Database error during user retrieval",
            user_id=str(user_id),
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )

    if user is None:
        logger.warning("Authentication failed: User not found", user_id=str(user_id))
        raise credentials_exception

    if not user.is_active:
        logger.warning(
            "Authentication failed: User account is inactive",
            user_id=str(user.id),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account",
        )

    logger.debug(
        "User authenticated successfully",
        user_id=str(user.id),
        role=user.role.value,
    )

    return user


def require_role(*allowed_roles: UserRole):
    """
    Create a dependency that requires specific user roles.

    Example:
        @router.get("/admin", dependencies=[Depends(require_role(UserRole.ADMIN))])
        async def admin_endpoint():
            return {"message": "Admin access granted"}
    """

    async def role_checker(
        current_user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        if current_user.role not in allowed_roles:
            logger.warning(
                "Access denied: Insufficient permissions",
                user_id=str(current_user.id),
                user_role=current_user.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

        return current_user

    return role_checker


async def get_optional_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Optional[User]:
    """
    Retrieve current user if authenticated, otherwise return None.

    Checkout accepts both signed-in customers and guests; a missing or
    invalid token means the request is treated as a guest checkout.
    """
    if credentials is None:
        return None

    try:
        return await get_current_user(credentials, db)
    except HTTPException:
        logger.debug("Optional authentication failed, proceeding as anonymous")
        return None


def get_notification_gateway(request: Request) -> NotificationGateway:
    """Notification gateway built once at application startup."""
    return request.app.state.notification_gateway


def get_stripe_client(request: Request) -> StripeClient:
    """Stripe client built once at application startup."""
    return request.app.state.stripe_client


def get_order_services(
    db: Annotated[AsyncSession, Depends(get_db)],
    gateway: Annotated[NotificationGateway, Depends(get_notification_gateway)],
    stripe_client: Annotated[StripeClient, Depends(get_stripe_client)],
) -> OrderServices:
    """Order services bound to the request's database session."""
    return build_order_services(db, gateway, stripe_client)


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentStaff = Annotated[User, Depends(require_role(UserRole.ADMIN, UserRole.COMPANY))]
CurrentSeller = Annotated[
    User,
    Depends(require_role(UserRole.SELLER, UserRole.SELLER_CANDIDATE, UserRole.ADMIN, UserRole.COMPANY)),
]
OptionalUser = Annotated[Optional[User], Depends(get_optional_user)]
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
Services = Annotated[OrderServices, Depends(get_order_services)]
