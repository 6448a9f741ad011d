"""
Authentication and service dependencies for FastAPI.

JWT-protected current user, plus per-request wiring of the domain
services onto the request session.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select
from parcelhop.app.core.jwt import decode_access_token
from parcelhop.app.core.rate_limit import PickupCodeAttemptLimiter
from parcelhop.app.core.redis_client import get_redis
from parcelhop.app.db.session import get_db, get_session_factory
from parcelhop.app.domain.matching.matching_service import MatchingService
from parcelhop.app.domain.missions.mission_service import MissionService
from parcelhop.app.domain.parcels.parcel_service import ParcelService
from parcelhop.app.models.user import User
from parcelhop.app.repositories.parcel_repository import SQLAlchemyMissionRepository
from parcelhop.app.services.notification_service import NotificationDispatcher, InAppNotificationDispatcher

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    1. Validates JWT token signature and expiry
    2. Verifies the user still exists and is active (real-time check)

    Returns:
        Decoded token payload containing user information

    Raises:
        HTTPException: 401 if authentication fails, 403 if the account is inactive
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    # Role in the token may be stale; the database is authoritative
    payload["role"] = user.role.value
    return payload


def get_dispatcher(session_factory: async_sessionmaker = Depends(get_session_factory)) -> NotificationDispatcher:
    """Lifecycle events are persisted as in-app notifications outside the request session."""
    return InAppNotificationDispatcher(session_factory)


def get_mission_repository(db: AsyncSession = Depends(get_db)) -> SQLAlchemyMissionRepository:
    return SQLAlchemyMissionRepository(db)


def get_mission_service(
    repository: SQLAlchemyMissionRepository = Depends(get_mission_repository),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> MissionService:
    return MissionService(repository, dispatcher)


def get_matching_service(
    repository: SQLAlchemyMissionRepository = Depends(get_mission_repository),
) -> MatchingService:
    return MatchingService(repository)


def get_parcel_service(
    repository: SQLAlchemyMissionRepository = Depends(get_mission_repository),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ParcelService:
    return ParcelService(repository, dispatcher)


async def get_pickup_limiter(redis=Depends(get_redis)) -> PickupCodeAttemptLimiter:
    return PickupCodeAttemptLimiter(redis)
