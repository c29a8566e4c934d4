import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from database import create_document, db, now_utc, to_object_id
from helpers import avatar_url, participant_ids, respond
from schemas import LastMessage, Message, MessageType
from security import get_current_user
from routers.matches import get_match_for, other_user_id
from routers.notifications import create_notification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])

MAX_MESSAGE_LENGTH = 1000


class SendMessageRequest(BaseModel):
    content: Optional[str] = None
    type: MessageType = "text"
    reply_to: Optional[str] = Field(None, alias="replyTo")
    media_url: Optional[str] = Field(None, alias="mediaUrl")


def _format_message(msg: dict, viewer_id: str, sender_name: Optional[str]) -> dict:
    mine = msg.get("sender_id") == viewer_id
    return {
        "id": str(msg["_id"]),
        "content": msg.get("content"),
        "senderId": "me" if mine else msg.get("sender_id"),
        "senderName": "You" if mine else sender_name,
        "timestamp": msg.get("created_at"),
        "type": msg.get("type") or "text",
        "isRead": viewer_id in (msg.get("read_by") or []),
        "mediaUrl": msg.get("media_url"),
        "replyTo": msg.get("reply_to"),
    }


def list_messages(match_id: str, user_id: str, page: int = 1, limit: int = 50) -> dict:
    """
    Messages of a match, oldest first. Afterwards every message from the
    other participant is marked read by user_id.
    """
    match = get_match_for(match_id, user_id)
    other_id = other_user_id(match, user_id)
    other = db["user"].find_one({"_id": to_object_id(other_id)}, {"name": 1, "photos": 1}) or {}

    messages = list(
        db["message"]
        .find({"match_id": str(match["_id"])})
        .sort([("created_at", 1), ("_id", 1)])
        .limit(max(limit, 1) * max(page, 1))
    )
    # Format before marking so the caller sees what was unread
    formatted = [_format_message(m, user_id, other.get("name")) for m in messages]

    db["message"].update_many(
        {"match_id": str(match["_id"]), "sender_id": {"$ne": user_id}, "read_by": {"$ne": user_id}},
        {"$addToSet": {"read_by": user_id}},
    )

    return {
        "messages": formatted,
        "match": {
            "id": str(match["_id"]),
            "userId": other_id,
            "name": other.get("name"),
            "avatar": avatar_url(other) if other else None,
            "isOnline": False,
        },
    }


def send_message(match_id: str, user_id: str, content: Optional[str], message_type: str = "text",
                 reply_to: Optional[str] = None, media_url: Optional[str] = None) -> dict:
    match = get_match_for(match_id, user_id)
    content = (content or "").strip()
    if not content:
        raise HTTPException(status_code=400, detail="Message content is required")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise HTTPException(status_code=400, detail="Message too long (max 1000 characters)")
    if match.get("status") != "active":
        raise HTTPException(status_code=400, detail="This match is no longer active")

    message = Message(
        match_id=str(match["_id"]),
        sender_id=user_id,
        content=content,
        type=message_type,
        reply_to=reply_to,
        media_url=media_url,
        read_by=[user_id],
    )
    message_id = create_document("message", message)
    stored = db["message"].find_one({"_id": to_object_id(message_id)})

    stamp = now_utc()
    last_message = LastMessage(content=content, sender_id=user_id, timestamp=stored["created_at"])
    db["match"].update_one(
        {"_id": match["_id"]},
        {"$set": {
            "last_message": last_message.model_dump(),
            "last_activity": stamp,
            "updated_at": stamp,
        }},
    )

    recipient_id = other_user_id(match, user_id)
    sender = db["user"].find_one({"_id": to_object_id(user_id)}, {"name": 1}) or {}
    preview = content if len(content) <= 60 else content[:57] + "..."
    create_notification(
        recipient_id,
        "message",
        f"New message from {sender.get('name', 'your match')}",
        preview,
        sender_id=user_id,
        data={"matchId": str(match["_id"]), "messageId": message_id},
    )
    logger.info("Message %s sent in match %s by %s", message_id, match_id, user_id)
    return _format_message(stored, user_id, None)


@router.get("/matches/{match_id}/messages")
def get_messages(match_id: str, page: int = 1, limit: int = 50, user=Depends(get_current_user)):
    return respond(list_messages(match_id, user["id"], page, limit))


@router.post("/matches/{match_id}/messages")
def post_message(match_id: str, payload: SendMessageRequest, user=Depends(get_current_user)):
    message = send_message(match_id, user["id"], payload.content, payload.type, payload.reply_to, payload.media_url)
    return respond({"message": message})


@router.put("/messages/{message_id}/read")
def mark_message_read(message_id: str, user=Depends(get_current_user)):
    oid = to_object_id(message_id)
    message = db["message"].find_one({"_id": oid}) if oid else None
    match = db["match"].find_one({"_id": to_object_id(message["match_id"])}) if message else None
    # Only participants of the message's match may touch it
    if not match or user["id"] not in participant_ids(match):
        raise HTTPException(status_code=404, detail="Message not found")
    db["message"].update_one({"_id": oid}, {"$addToSet": {"read_by": user["id"]}})
    return respond(message="Message marked as read")


@router.delete("/messages/{message_id}")
def delete_message(message_id: str, user=Depends(get_current_user)):
    oid = to_object_id(message_id)
    result = db["message"].delete_one({"_id": oid, "sender_id": user["id"]}) if oid else None
    if not result or result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Message not found or not authorized")
    logger.info("Message %s deleted by %s", message_id, user["id"])
    return respond(message="Message deleted")


@router.get("/unread-count")
def unread_count(user=Depends(get_current_user)):
    user_id = user["id"]
    match_ids = [
        str(m["_id"])
        for m in db["match"].find({"$or": [{"user1_id": user_id}, {"user2_id": user_id}]}, {"_id": 1})
    ]
    count = db["message"].count_documents({
        "match_id": {"$in": match_ids},
        "sender_id": {"$ne": user_id},
        "read_by": {"$ne": user_id},
    }) if match_ids else 0
    return respond({"unreadCount": count})
