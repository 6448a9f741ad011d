"""
Audit Log Database Model.

Records who moved which parcel through which lifecycle transition.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from parcelhop.app.db.session import Base


class AuditLog(Base):
    """
    Audit log entry.

    Events logged:
    - PARCEL_CREATED / PARCEL_CANCELLED
    - MISSION_ACCEPTED / PICKUP_CONFIRMED / MISSION_DELIVERED
    - PACKAGING_SUBMITTED / PACKAGING_CONFIRMED / PACKAGING_REJECTED
    - PACKAGING_AUTO_CONFIRMED (system actor)
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    action = Column(String(100), nullable=False, index=True)

    # What was acted upon
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, index=True, nullable=True)

    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, entity={self.entity_type}:{self.entity_id})>"
