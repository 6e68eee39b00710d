from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum

class MessageType(str, Enum):
    GENERAL = "general"
    PURCHASE_REQUEST = "purchase_request"
    SWAP_OFFER = "swap_offer"
    SWAP_ACCEPTED = "swap_accepted"
    SWAP_DECLINED = "swap_declined"
    BORROW_REQUEST = "borrow_request"
    BORROW_ACCEPTED = "borrow_accepted"
    BORROW_DECLINED = "borrow_declined"

class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

# Message types that carry a requestStatus
REQUEST_TYPES = frozenset({MessageType.PURCHASE_REQUEST, MessageType.SWAP_OFFER})

class MessageIn(BaseModel):
    receiverId: str
    bookId: str
    text: str = ""
    chatId: Optional[str] = None
    timestamp: Optional[datetime] = None
    messageType: Optional[MessageType] = None

class MessageCreate(MessageIn):
    senderId: str
    requestStatus: Optional[RequestStatus] = None

class MessageUpdate(BaseModel):
    read: Optional[bool] = None
    requestStatus: Optional[RequestStatus] = None

class MessageDetails(BaseModel):
    id: str
    chatId: Optional[str] = None
    senderId: str
    receiverId: str
    bookId: str
    text: str = ""
    timestamp: datetime
    messageType: MessageType = MessageType.GENERAL
    requestStatus: Optional[RequestStatus] = None
    statusChangedAt: Optional[datetime] = None
    read: bool = False
    readAt: Optional[datetime] = None

class Conversation(BaseModel):
    chatId: str
    bookId: str
    otherUserId: str
    lastMessage: MessageDetails
    unreadCount: int = 0
