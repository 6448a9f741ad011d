"""
Notification dispatch.

The mission engine emits lifecycle events through ``NotificationDispatcher``
and never looks at the outcome. The in-app implementation turns each event
into Notification rows for the recipients listed in the payload, in its own
session, and swallows (logs) any failure.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import update

from parcelhop.app.domain.missions.events import MissionEvent
from parcelhop.app.models.notification import Notification, NotificationType

logger = logging.getLogger("parcelhop.notifications")


EVENT_TEMPLATES = {
    MissionEvent.PARCEL_CREATED: (
        NotificationType.INFO, "New parcel nearby", "A {size} parcel is waiting for pickup {distance_km} km away."
    ),
    MissionEvent.PARCEL_ACCEPTED: (
        NotificationType.MISSION_UPDATE, "Carrier found", "A carrier accepted parcel #{parcel_id}."
    ),
    MissionEvent.CARRIER_DEPARTED: (
        NotificationType.MISSION_UPDATE, "Carrier on the way", "Your carrier arrives in about {eta_minutes} minutes."
    ),
    MissionEvent.CARRIER_ARRIVED: (
        NotificationType.MISSION_UPDATE, "Carrier arrived", "Your carrier is at the pickup address for parcel #{parcel_id}."
    ),
    MissionEvent.PACKAGING_SUBMITTED: (
        NotificationType.WARNING, "Check the packaging",
        "Please confirm or reject the packaging of parcel #{parcel_id} within {grace_period_hours} hours."
    ),
    MissionEvent.PACKAGING_CONFIRMED: (
        NotificationType.SUCCESS, "Packaging confirmed", "Packaging of parcel #{parcel_id} is confirmed, proceed to pickup."
    ),
    MissionEvent.PACKAGING_REJECTED: (
        NotificationType.WARNING, "Packaging rejected", "Packaging of parcel #{parcel_id} was rejected: {reason}"
    ),
    MissionEvent.PARCEL_PICKED_UP: (
        NotificationType.MISSION_UPDATE, "Parcel picked up", "Parcel #{parcel_id} has been picked up."
    ),
    MissionEvent.PARCEL_DELIVERED: (
        NotificationType.SUCCESS, "Parcel delivered", "Parcel #{parcel_id} has been delivered."
    ),
    MissionEvent.PAYMENT_RELEASE_REQUESTED: (
        NotificationType.PAYMENT_UPDATE, "Payout on its way", "Your payout of {carrier_payout} for parcel #{parcel_id} is being released."
    ),
    MissionEvent.PARCEL_CANCELLED: (
        NotificationType.WARNING, "Parcel cancelled", "Parcel #{parcel_id} was cancelled."
    ),
}


class NotificationDispatcher(ABC):
    """Fire-and-forget sink for lifecycle events."""

    @abstractmethod
    async def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        """Deliver an event. Implementations must not raise."""


class InAppNotificationDispatcher(NotificationDispatcher):
    """Persists one in-app notification per recipient."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        recipients = payload.get("recipient_ids") or []
        if not recipients:
            logger.debug("Event %s has no recipients", event_name)
            return

        try:
            notif_type, title, template = EVENT_TEMPLATES.get(
                event_name, (NotificationType.INFO, event_name, event_name)
            )
            message = template.format_map(_DefaultDict(payload))
            metadata = _json_safe(payload)

            async with self.session_factory() as session:
                for user_id in recipients:
                    await NotificationService.create_notification(
                        session,
                        user_id=user_id,
                        title=title,
                        message=message,
                        type=notif_type,
                        event_name=event_name,
                        metadata=metadata,
                    )
                await session.commit()
        except Exception:
            logger.exception("Failed to dispatch %s to %s", event_name, recipients)


class _DefaultDict(dict):
    def __missing__(self, key):
        return "?"


def _json_safe(payload: Dict[str, Any]) -> Dict[str, Any]:
    safe = {}
    for key, value in payload.items():
        if isinstance(value, Decimal):
            safe[key] = str(value)
        elif isinstance(value, datetime):
            safe[key] = value.isoformat()
        else:
            safe[key] = value
    return safe


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        event_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            type=type,
            event_name=event_name,
            title=title,
            message=message,
            metadata_payload=metadata
        )
        db.add(notif)
        await db.flush()  # Caller commits
        return notif

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all notifications for user as read."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount


def recipients(*user_ids: Optional[int]) -> List[int]:
    """Distinct, non-null recipient list preserving order."""
    seen = []
    for user_id in user_ids:
        if user_id is not None and user_id not in seen:
            seen.append(user_id)
    return seen
