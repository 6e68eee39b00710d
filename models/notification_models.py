from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum

class NotificationType(str, Enum):
    NEW_MESSAGE = "new_message"
    PURCHASE_REQUEST = "purchase_request"
    SWAP_OFFER = "swap_offer"
    REQUEST_STATUS_CHANGED = "request_status_changed"

class Notification(BaseModel):
    user_id: str
    type: NotificationType
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    read: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class NotificationOut(Notification):
    id: str
