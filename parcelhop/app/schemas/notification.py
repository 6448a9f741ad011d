"""
Notification Schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, Dict, Any
from parcelhop.app.models.notification import NotificationType


class NotificationResponse(BaseModel):
    id: int
    type: NotificationType
    event_name: Optional[str]
    title: str
    message: str
    metadata_payload: Optional[Dict[str, Any]]
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime]

    class Config:
        from_attributes = True
