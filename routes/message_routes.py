import logging
from fastapi import APIRouter, Depends, HTTPException
from typing import Any, Dict, List
from bson import ObjectId
from book_catalog import MongoBookCatalog
from dataBase import get_db
from message_service import MessageRuleError, MessageService, build_chat_id
from models.message_models import (
    Conversation,
    MessageCreate,
    MessageDetails,
    MessageIn,
    MessageType,
    MessageUpdate,
)
from models.notification_models import Notification, NotificationType
from utils import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])

_REQUEST_NOTIFICATIONS = {
    MessageType.PURCHASE_REQUEST: (NotificationType.PURCHASE_REQUEST, "New Purchase Request"),
    MessageType.SWAP_OFFER: (NotificationType.SWAP_OFFER, "New Swap Offer"),
}

def get_message_service(db=Depends(get_db)) -> MessageService:
    return MessageService(MongoBookCatalog(db))

def serialize_message(message) -> dict:
    return {
        "id": str(message["_id"]),
        "chatId": message.get("chatId"),
        "senderId": message.get("senderId"),
        "receiverId": message.get("receiverId"),
        "bookId": message.get("bookId"),
        "text": message.get("text", ""),
        "timestamp": message.get("timestamp"),
        "messageType": message.get("messageType", MessageType.GENERAL.value),
        "requestStatus": message.get("requestStatus"),
        "statusChangedAt": message.get("statusChangedAt"),
        "read": message.get("read", False),
        "readAt": message.get("readAt"),
    }

def _to_document(payload: MessageCreate) -> Dict[str, Any]:
    document = payload.model_dump()
    document["messageType"] = payload.messageType.value
    if payload.requestStatus is None:
        del document["requestStatus"]
    else:
        document["requestStatus"] = payload.requestStatus.value
    document["read"] = False
    document["readAt"] = None
    return document

def _to_set(update: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (v.value if hasattr(v, "value") else v) for k, v in update.items()}

async def _notify(db, notification: Notification):
    # notifications are best effort; the message is already stored
    try:
        await db.notifications.insert_one(notification.model_dump())
    except Exception:
        logger.exception("Failed to record notification for user %s", notification.user_id)

def _rule_error(e: MessageRuleError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.detail())

@router.post("/", response_model=MessageDetails)
async def send_message(
    message: MessageIn,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_db),
    service: MessageService = Depends(get_message_service),
):
    try:
        payload = MessageCreate(**message.model_dump(), senderId=user_id)
        if not payload.chatId:
            payload.chatId = build_chat_id(user_id, payload.receiverId, payload.bookId)

        try:
            prepared = await service.prepare_create(payload)
        except MessageRuleError as e:
            raise _rule_error(e)

        result = await db.messages.insert_one(_to_document(prepared))
        created = await db.messages.find_one({"_id": result.inserted_id})
        created_message = serialize_message(created)
        logger.info("New message created: %s", created_message["id"])
        logger.info("From: %s To: %s Book: %s", prepared.senderId, prepared.receiverId, prepared.bookId)

        notification_type, title = _REQUEST_NOTIFICATIONS.get(
            prepared.messageType, (NotificationType.NEW_MESSAGE, "New Message")
        )
        await _notify(db, Notification(
            user_id=prepared.receiverId,
            type=notification_type,
            title=title,
            message=prepared.text or title,
            data={
                "message_id": created_message["id"],
                "chat_id": prepared.chatId,
                "book_id": prepared.bookId,
            },
        ))

        return created_message
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/chats/{chat_id}", response_model=List[MessageDetails])
async def get_chat_messages(chat_id: str, db=Depends(get_db)):
    try:
        messages = []
        cursor = db.messages.find({"chatId": chat_id}).sort("timestamp", 1)
        async for message in cursor:
            messages.append(serialize_message(message))
        return messages
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/users/{user_id}/chats", response_model=List[Conversation])
async def get_user_chats(user_id: str, db=Depends(get_db)):
    try:
        conversations: Dict[str, dict] = {}
        query = {"$or": [{"senderId": user_id}, {"receiverId": user_id}]}
        cursor = db.messages.find(query).sort("timestamp", -1)

        async for message in cursor:
            data = serialize_message(message)
            other_user_id = data["receiverId"] if data["senderId"] == user_id else data["senderId"]
            chat_id = data["chatId"] or build_chat_id(user_id, other_user_id, data["bookId"])
            if chat_id not in conversations:
                # cursor is newest first, so the first hit is the last message
                conversations[chat_id] = {
                    "chatId": chat_id,
                    "bookId": data["bookId"],
                    "otherUserId": other_user_id,
                    "lastMessage": data,
                    "unreadCount": 0,
                }
            if data["receiverId"] == user_id and not data["read"]:
                conversations[chat_id]["unreadCount"] += 1

        return list(conversations.values())
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/users/{user_id}/unread-count")
async def get_unread_count(user_id: str, db=Depends(get_db)):
    try:
        count = await db.messages.count_documents({"receiverId": user_id, "read": False})
        return {"unreadCount": count}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.put("/chats/{chat_id}/read")
async def mark_chat_read(
    chat_id: str,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_db),
    service: MessageService = Depends(get_message_service),
):
    try:
        updated = 0
        mark_read = MessageUpdate(read=True)
        cursor = db.messages.find({"chatId": chat_id, "receiverId": user_id, "read": False})
        async for message in cursor:
            update = service.prepare_update(MessageDetails(**serialize_message(message)), mark_read)
            if not update:
                continue
            result = await db.messages.update_one(
                {"_id": message["_id"], "read": False},
                {"$set": _to_set(update)}
            )
            updated += result.modified_count
        return {"message": "Messages marked as read", "updated": updated}
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.put("/{message_id}", response_model=MessageDetails)
async def update_message(
    message_id: str,
    changes: MessageUpdate,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_db),
    service: MessageService = Depends(get_message_service),
):
    try:
        if not ObjectId.is_valid(message_id):
            raise HTTPException(status_code=404, detail="Message not found")
        existing = await db.messages.find_one({"_id": ObjectId(message_id)})
        if not existing:
            raise HTTPException(status_code=404, detail="Message not found")

        current = MessageDetails(**serialize_message(existing))
        try:
            update = service.prepare_update(current, changes)
        except MessageRuleError as e:
            raise _rule_error(e)

        if update:
            query = {"_id": ObjectId(message_id)}
            if "requestStatus" in update:
                # only apply if nobody moved the status since we read it
                query["requestStatus"] = existing.get("requestStatus")
            result = await db.messages.update_one(query, {"$set": _to_set(update)})
            if result.matched_count == 0:
                raise HTTPException(status_code=409, detail="Message was modified concurrently, retry")

        updated = await db.messages.find_one({"_id": ObjectId(message_id)})
        updated_message = serialize_message(updated)

        if "requestStatus" in update:
            status = update["requestStatus"].value
            # any verified caller may move a request; notify every participant but the caller
            for participant in dict.fromkeys([current.senderId, current.receiverId]):
                if participant == user_id:
                    continue
                await _notify(db, Notification(
                    user_id=participant,
                    type=NotificationType.REQUEST_STATUS_CHANGED,
                    title="Request Updated",
                    message=f"Your {current.messageType.value.replace('_', ' ')} is now {status}",
                    data={"message_id": message_id, "chat_id": current.chatId, "status": status},
                ))

        return updated_message
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.delete("/{message_id}")
async def delete_message(
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    db=Depends(get_db),
):
    try:
        if not ObjectId.is_valid(message_id):
            raise HTTPException(status_code=404, detail="Message not found")
        message = await db.messages.find_one({"_id": ObjectId(message_id)})
        if not message:
            raise HTTPException(status_code=404, detail="Message not found")
        if message.get("senderId") != user_id:
            raise HTTPException(status_code=403, detail="Only the sender can delete a message")

        await db.messages.delete_one({"_id": ObjectId(message_id)})
        return {"message": "Message deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
