import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from config import PAGE_SIZE
from database import create_document, db, now_utc, to_object_id
from helpers import avatar_url, format_timestamp, respond
from schemas import Notification, NotificationType
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

ICONS = {
    "match": ("heart", "#FF6B6B"),
    "like": ("heart-outline", "#FF6B6B"),
    "message": ("chatbubble", "#4ECDC4"),
    "confession": ("trending-up", "#45B7D1"),
    "comment": ("chatbubble-outline", "#96CEB4"),
}
DEFAULT_ICON = ("notifications", "#999999")


def create_notification(
    recipient_id: str,
    notification_type: NotificationType,
    title: str,
    message: str,
    sender_id: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
) -> str:
    notification = Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        type=notification_type,
        title=title,
        message=message,
        data=data or {},
    )
    return create_document("notification", notification)


def create_notifications(notifications: List[Notification]) -> List[str]:
    """Insert several notifications in one round trip."""
    stamp = now_utc()
    docs = [dict(n.model_dump(), created_at=stamp, updated_at=stamp) for n in notifications]
    result = db["notification"].insert_many(docs)
    return [str(i) for i in result.inserted_ids]


def _senders(notifications: List[dict]) -> Dict[str, dict]:
    ids = {to_object_id(n["sender_id"]) for n in notifications if n.get("sender_id")}
    ids.discard(None)
    if not ids:
        return {}
    return {str(u["_id"]): u for u in db["user"].find({"_id": {"$in": list(ids)}}, {"name": 1, "photos": 1})}


@router.get("")
def list_notifications(
    page: int = 1,
    notification_type: Optional[NotificationType] = Query(None, alias="type"),
    unread_only: bool = Query(False, alias="unreadOnly"),
    user=Depends(get_current_user),
):
    page = max(page, 1)
    query: Dict[str, Any] = {"recipient_id": user["id"]}
    if notification_type:
        query["type"] = notification_type
    if unread_only:
        query["is_read"] = False

    docs = list(db["notification"].find(query).sort([("created_at", -1), ("_id", -1)]).limit(page * PAGE_SIZE))
    senders = _senders(docs)

    items = []
    for n in docs:
        icon, color = ICONS.get(n.get("type"), DEFAULT_ICON)
        sender = senders.get(n.get("sender_id"))
        items.append({
            "id": str(n["_id"]),
            "type": n.get("type"),
            "title": n.get("title"),
            "message": n.get("message"),
            "avatar": avatar_url(sender, 40),
            "timestamp": format_timestamp(n.get("created_at")),
            "isRead": bool(n.get("is_read")),
            "icon": icon,
            "iconColor": color,
            "data": n.get("data") or {},
        })

    return respond({
        "notifications": items,
        "totalCount": len(items),
        "unreadCount": sum(1 for n in items if not n["isRead"]),
    })


@router.put("/mark-all-read")
def mark_all_read(user=Depends(get_current_user)):
    stamp = now_utc()
    result = db["notification"].update_many(
        {"recipient_id": user["id"], "is_read": False},
        {"$set": {"is_read": True, "read_at": stamp, "updated_at": stamp}},
    )
    logger.info("Marked %d notifications read for %s", result.modified_count, user["id"])
    return respond({"modifiedCount": result.modified_count}, f"{result.modified_count} notifications marked as read")


@router.get("/unread-count")
def unread_count(user=Depends(get_current_user)):
    count = db["notification"].count_documents({"recipient_id": user["id"], "is_read": False})
    return respond({"unreadCount": count})


@router.put("/{notification_id}/read")
def mark_read(notification_id: str, user=Depends(get_current_user)):
    oid = to_object_id(notification_id)
    if oid is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    notification = db["notification"].find_one({"_id": oid, "recipient_id": user["id"]})
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    if not notification.get("is_read"):
        stamp = now_utc()
        db["notification"].update_one({"_id": oid}, {"$set": {"is_read": True, "read_at": stamp, "updated_at": stamp}})
    return respond(message="Notification marked as read")
