from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List
from bson import ObjectId
from models.notification_models import NotificationOut
from dataBase import get_db

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.get("/users/{user_id}", response_model=List[NotificationOut])
async def get_user_notifications(
    user_id: str,
    unread_only: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db=Depends(get_db),
):
    try:
        query = {"user_id": user_id}
        if unread_only:
            query["read"] = False

        notifications = []
        cursor = db.notifications.find(query) \
            .sort("created_at", -1) \
            .skip(skip).limit(limit)

        async for notif in cursor:
            notif["id"] = str(notif["_id"])
            del notif["_id"]
            notifications.append(notif)

        return notifications
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.put("/{notification_id}/read")
async def mark_notification_read(notification_id: str, db=Depends(get_db)):
    try:
        if not ObjectId.is_valid(notification_id):
            raise HTTPException(status_code=404, detail="Notification not found")
        result = await db.notifications.update_one(
            {"_id": ObjectId(notification_id)},
            {"$set": {"read": True}}
        )

        if result.matched_count == 0:
            raise HTTPException(status_code=404, detail="Notification not found")

        return {"message": "Notification marked as read"}
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
