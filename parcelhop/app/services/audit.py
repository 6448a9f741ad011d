"""
Audit logging service for parcel lifecycle actions.

Provides centralized logging of who moved which parcel through which
transition, for dispute handling and compliance.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from parcelhop.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    PARCEL_CREATED = "PARCEL_CREATED"
    PARCEL_UPDATED = "PARCEL_UPDATED"
    PARCEL_CANCELLED = "PARCEL_CANCELLED"

    MISSION_ACCEPTED = "MISSION_ACCEPTED"
    CARRIER_DEPARTED = "CARRIER_DEPARTED"
    CARRIER_ARRIVED = "CARRIER_ARRIVED"
    PICKUP_CONFIRMED = "PICKUP_CONFIRMED"
    PICKUP_CODE_FAILED = "PICKUP_CODE_FAILED"
    MISSION_DELIVERED = "MISSION_DELIVERED"

    PACKAGING_SUBMITTED = "PACKAGING_SUBMITTED"
    PACKAGING_CONFIRMED = "PACKAGING_CONFIRMED"
    PACKAGING_REJECTED = "PACKAGING_REJECTED"
    PACKAGING_AUTO_CONFIRMED = "PACKAGING_AUTO_CONFIRMED"

    REVIEW_CREATED = "REVIEW_CREATED"
    CARRIER_SETTINGS_UPDATED = "CARRIER_SETTINGS_UPDATED"

    ADDRESS_CREATED = "ADDRESS_CREATED"
    ADDRESS_UPDATED = "ADDRESS_UPDATED"
    ADDRESS_DELETED = "ADDRESS_DELETED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log a lifecycle event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action (None for the scheduler)
        actor_username: Username of actor
        entity_type: "parcel", "mission", "review", ...
        entity_id: ID of the entity acted upon
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def log_parcel_event(
    db: AsyncSession,
    action: str,
    parcel_id: int,
    actor: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Shortcut for parcel transitions; ``actor`` is the decoded token payload."""
    return await log_event(
        db=db,
        action=action,
        actor_id=actor.get("user_id") if actor else None,
        actor_username=actor.get("sub") if actor else "system",
        entity_type="parcel",
        entity_id=parcel_id,
        metadata=metadata,
    )


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
