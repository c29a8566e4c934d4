import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from config import PAGE_SIZE
from database import create_document, db, now_utc, to_object_id
from helpers import avatar_url, format_timestamp, participant_ids, respond
from schemas import SWIPE_ACTIONS, Match, Notification, Swipe
from security import get_current_user
from routers.notifications import create_notification, create_notifications

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/matches", tags=["matches"])

POSITIVE_ACTIONS = ("like", "superlike")


class SwipeRequest(BaseModel):
    target_user_id: Optional[str] = Field(None, alias="targetUserId")
    action: Optional[str] = None


class UnmatchRequest(BaseModel):
    reason: Optional[str] = None


def pair_filter(a: str, b: str) -> Dict[str, Any]:
    """Query matching a match document for the unordered pair {a, b}."""
    return {"$or": [{"user1_id": a, "user2_id": b}, {"user1_id": b, "user2_id": a}]}


def find_active_match(a: str, b: str) -> Optional[dict]:
    return db["match"].find_one({**pair_filter(a, b), "status": "active"})


def record_swipe(swiper_id: str, target_id: str, action: str) -> Dict[str, Any]:
    """
    Record swiper's action on target and run the match check.

    The swipe is upserted before the reciprocal lookup so that two users
    liking each other always see at least one of the two swipes. When the
    reciprocal like exists and the pair has no active match, a match and
    one "match" notification per side are created. A like without a
    reciprocal notifies the target only; a pass does nothing further.

    Two concurrent mutual likes can both pass the existence check and
    create two matches; migrations.dedupe_matches removes the extra one.
    """
    if action not in SWIPE_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action. Must be like, pass, or superlike")
    target_oid = to_object_id(target_id)
    target = db["user"].find_one({"_id": target_oid}) if target_oid else None
    if not target:
        raise HTTPException(status_code=404, detail="Target user not found")
    # Canonical form, so an upper-cased id still names the same pair
    target_id = str(target["_id"])
    if swiper_id == target_id:
        raise HTTPException(status_code=400, detail="Cannot swipe on yourself")

    swipe = Swipe(swiper_id=swiper_id, swiped_id=target_id, action=action)
    stamp = swipe.swiped_at
    # One document per ordered pair; a repeat swipe overwrites the action
    db["swipe"].update_one(
        {"swiper_id": swiper_id, "swiped_id": target_id},
        {
            "$set": {"action": action, "swiped_at": stamp, "updated_at": stamp},
            "$setOnInsert": {"created_at": stamp},
        },
        upsert=True,
    )
    logger.info("Swipe %s -> %s: %s", swiper_id, target_id, action)

    if action not in POSITIVE_ACTIONS:
        return {"isMatch": False, "matchId": None}

    reciprocal = db["swipe"].find_one({
        "swiper_id": target_id,
        "swiped_id": swiper_id,
        "action": {"$in": list(POSITIVE_ACTIONS)},
    })
    if not reciprocal:
        create_notification(
            target_id,
            "like",
            "Someone likes you! ❤️",
            "You have a new admirer",
            sender_id=swiper_id,
            data={"userId": swiper_id},
        )
        return {"isMatch": False, "matchId": None}

    existing = find_active_match(swiper_id, target_id)
    if existing:
        return {"isMatch": True, "matchId": str(existing["_id"])}

    match_id = create_document("match", Match(user1_id=swiper_id, user2_id=target_id, matched_at=stamp, last_activity=stamp))
    swiper = db["user"].find_one({"_id": to_object_id(swiper_id)}, {"name": 1}) or {}
    create_notifications([
        Notification(
            recipient_id=swiper_id,
            sender_id=target_id,
            type="match",
            title="New Match! 💕",
            message=f"You and {target.get('name')} liked each other!",
            data={"matchId": match_id, "userId": target_id},
        ),
        Notification(
            recipient_id=target_id,
            sender_id=swiper_id,
            type="match",
            title="New Match! 💕",
            message=f"You and {swiper.get('name')} liked each other!",
            data={"matchId": match_id, "userId": swiper_id},
        ),
    ])
    logger.info("New match %s between %s and %s", match_id, swiper_id, target_id)
    return {"isMatch": True, "matchId": match_id}


def get_match_for(match_id: str, user_id: str) -> dict:
    """Load a match the user takes part in, or raise 404."""
    oid = to_object_id(match_id)
    match = db["match"].find_one({"_id": oid}) if oid else None
    if not match or user_id not in participant_ids(match):
        raise HTTPException(status_code=404, detail="Match not found")
    return match


def other_user_id(match: dict, user_id: str) -> str:
    return match["user2_id"] if match["user1_id"] == user_id else match["user1_id"]


@router.get("")
def list_matches(page: int = 1, user=Depends(get_current_user)):
    page = max(page, 1)
    user_id = user["id"]
    matches = list(
        db["match"]
        .find({"$or": [{"user1_id": user_id}, {"user2_id": user_id}], "status": "active"})
        .sort("last_activity", -1)
        .limit(page * PAGE_SIZE)
    )

    others = {other_user_id(m, user_id) for m in matches}
    oids = [oid for oid in map(to_object_id, others) if oid is not None]
    users = {str(u["_id"]): u for u in db["user"].find({"_id": {"$in": oids}}, {"name": 1, "photos": 1, "college": 1})}

    items = []
    for m in matches:
        other_id = other_user_id(m, user_id)
        other = users.get(other_id)
        if not other:
            continue
        last = m.get("last_message") or {}
        unread = db["message"].count_documents({
            "match_id": str(m["_id"]),
            "sender_id": other_id,
            "read_by": {"$ne": user_id},
        })
        items.append({
            "id": str(m["_id"]),
            "matchId": str(m["_id"]),
            "userId": other_id,
            "name": other.get("name"),
            "avatar": avatar_url(other),
            "lastMessage": last.get("content") or "Say hello! 👋",
            "timestamp": format_timestamp(last.get("timestamp") or m.get("matched_at")),
            "unreadCount": unread,
            "isOnline": False,
            "isTyping": False,
            "matchedAt": m.get("matched_at"),
        })

    return respond({"matches": items, "totalCount": len(items)})


@router.post("/swipe")
def swipe(payload: SwipeRequest, user=Depends(get_current_user)):
    if not payload.target_user_id or not payload.action:
        raise HTTPException(status_code=400, detail="Target user ID and action are required")
    result = record_swipe(user["id"], payload.target_user_id, payload.action)
    result["message"] = "It's a match! 💕" if result["isMatch"] else "Swipe recorded"
    return respond(result)


@router.get("/{match_id}")
def get_match(match_id: str, user=Depends(get_current_user)):
    match = get_match_for(match_id, user["id"])
    other_id = other_user_id(match, user["id"])
    other = db["user"].find_one({"_id": to_object_id(other_id)}, {"name": 1, "photos": 1, "college": 1}) or {}
    return respond({
        "match": {
            "id": str(match["_id"]),
            "userId": other_id,
            "name": other.get("name"),
            "avatar": avatar_url(other) if other else None,
            "college": other.get("college"),
            "status": match.get("status"),
            "matchedAt": match.get("matched_at"),
            "lastActivity": match.get("last_activity"),
        }
    })


@router.delete("/{match_id}")
def unmatch(match_id: str, payload: Optional[UnmatchRequest] = None, user=Depends(get_current_user)):
    match = get_match_for(match_id, user["id"])
    if match.get("status") == "active":
        db["match"].update_one(
            {"_id": match["_id"]},
            {"$set": {"status": "unmatched", "updated_at": now_utc(), "unmatched_by": user["id"]}},
        )
    logger.info("Match %s unmatched by %s (reason: %s)", match_id, user["id"], payload.reason if payload else None)
    return respond(message="Match removed successfully")
