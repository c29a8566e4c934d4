import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from config import PAGE_SIZE
from database import create_document, db, now_utc, to_object_id
from helpers import respond, time_ago
from schemas import CATEGORIES, REACTION_TYPES, Comment, Confession, Reaction, Reply
from security import get_current_user
from routers.notifications import create_notification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/confessions", tags=["confessions"])

MIN_CONTENT, MAX_CONTENT = 3, 1000
MAX_COMMENT = 500
TRENDING_HOURS = 24
TRENDING_LIMIT = 10


class CreateConfessionRequest(BaseModel):
    content: Optional[str] = None
    category: str = "general"


class ReactRequest(BaseModel):
    type: Optional[str] = None


class CommentRequest(BaseModel):
    content: Optional[str] = None


def reaction_counts(confession: dict) -> Dict[str, int]:
    counts = {t: 0 for t in REACTION_TYPES}
    for reaction in _as_list(confession.get("reactions")):
        if reaction.get("type") in counts:
            counts[reaction["type"]] += 1
    return counts


def user_reactions(confession: dict, user_id: str) -> Dict[str, bool]:
    mine = {r.get("type") for r in _as_list(confession.get("reactions")) if r.get("user_id") == user_id}
    return {t: t in mine for t in REACTION_TYPES}


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _format_reply(reply: dict) -> dict:
    return {
        "id": str(reply.get("_id")),
        "content": reply.get("content"),
        "author": "Anonymous",
        "timeAgo": time_ago(reply.get("created_at")),
        "upvotes": len(_as_list(reply.get("upvotes"))),
    }


def _format_comment(comment: dict) -> dict:
    formatted = _format_reply(comment)
    formatted["replies"] = [_format_reply(r) for r in _as_list(comment.get("replies"))]
    return formatted


def format_confession(confession: dict, user_id: str, with_comments: bool = False) -> dict:
    comments = _as_list(confession.get("comments"))
    formatted = {
        "id": str(confession["_id"]),
        "content": confession.get("content"),
        "category": confession.get("category", "general"),
        "reactions": reaction_counts(confession),
        "commentCount": len(comments),
        "timeAgo": time_ago(confession.get("created_at")),
        "isAnonymous": confession.get("is_anonymous", True),
        "userReactions": user_reactions(confession, user_id),
    }
    if with_comments:
        formatted["comments"] = [_format_comment(c) for c in comments]
    return formatted


def _load_confession(confession_id: str) -> dict:
    oid = to_object_id(confession_id)
    confession = db["confession"].find_one({"_id": oid}) if oid else None
    if not confession:
        raise HTTPException(status_code=404, detail="Confession not found")
    return confession


def _require_same_college(confession: dict, user: dict) -> None:
    if confession.get("college") != user.get("college"):
        raise HTTPException(status_code=403, detail="Access denied")


def _comment_content(content: Optional[str], label: str) -> str:
    content = (content or "").strip()
    if not content:
        raise HTTPException(status_code=400, detail=f"{label} content is required")
    if len(content) > MAX_COMMENT:
        raise HTTPException(status_code=400, detail=f"{label} too long (max 500 characters)")
    return content


def toggle_reaction(confession: dict, user_id: str, reaction_type: str) -> bool:
    """
    Apply a reaction toggle and return whether the user now holds a reaction.

    The same type again removes it. A different type replaces the user's
    previous reaction, so each user holds at most one.
    """
    had_same = any(
        r.get("user_id") == user_id and r.get("type") == reaction_type
        for r in _as_list(confession.get("reactions"))
    )
    db["confession"].update_one({"_id": confession["_id"]}, {"$pull": {"reactions": {"user_id": user_id}}})
    if had_same:
        return False
    reaction = Reaction(user_id=user_id, type=reaction_type)
    db["confession"].update_one(
        {"_id": confession["_id"]},
        {"$push": {"reactions": reaction.model_dump()}, "$set": {"updated_at": now_utc()}},
    )
    return True


@router.get("")
def list_confessions(category: str = "all", page: int = 1, limit: int = PAGE_SIZE, user=Depends(get_current_user)):
    page = max(page, 1)
    limit = max(1, min(limit, 100))
    query: Dict[str, Any] = {"college": user.get("college"), "is_reported": {"$ne": True}}
    if category != "all":
        query["category"] = category

    docs = list(
        db["confession"]
        .find(query)
        .sort([("created_at", -1), ("_id", -1)])
        .skip((page - 1) * limit)
        .limit(limit)
    )
    logger.info("Found %d confessions for %s", len(docs), user.get("college"))
    return respond({
        "confessions": [format_confession(c, user["id"]) for c in docs],
        "hasMore": len(docs) == limit,
    })


@router.post("")
def create_confession(payload: CreateConfessionRequest, user=Depends(get_current_user)):
    content = (payload.content or "").strip()
    if not content:
        raise HTTPException(status_code=400, detail="Content is required")
    if len(content) < MIN_CONTENT:
        raise HTTPException(status_code=400, detail="Content too short (min 3 characters)")
    if len(content) > MAX_CONTENT:
        raise HTTPException(status_code=400, detail="Content too long (max 1000 characters)")
    if payload.category not in CATEGORIES:
        raise HTTPException(status_code=400, detail="Invalid category")

    confession = Confession(user_id=user["id"], content=content, category=payload.category, college=user["college"])
    confession_id = create_document("confession", confession)
    logger.info("New confession %s by %s in %s", confession_id, user["id"], user["college"])

    stored = db["confession"].find_one({"_id": to_object_id(confession_id)})
    return JSONResponse(
        status_code=201,
        content=jsonable_encoder(respond({"confession": format_confession(stored, user["id"])})),
    )


@router.get("/trending")
def trending_confessions(user=Depends(get_current_user)):
    since = now_utc() - timedelta(hours=TRENDING_HOURS)
    docs = list(db["confession"].find({
        "college": user.get("college"),
        "is_reported": {"$ne": True},
        "created_at": {"$gte": since},
    }))

    def score(c: dict) -> float:
        return (
            len(_as_list(c.get("upvotes")))
            + 0.5 * len(_as_list(c.get("reactions")))
            + 2 * len(_as_list(c.get("comments")))
        )

    docs.sort(key=lambda c: (score(c), c.get("created_at")), reverse=True)
    items = []
    for c in docs[:TRENDING_LIMIT]:
        item = format_confession(c, user["id"])
        item["score"] = score(c)
        items.append(item)
    return respond({"confessions": items})


@router.get("/{confession_id}")
def get_confession(confession_id: str, user=Depends(get_current_user)):
    confession = _load_confession(confession_id)
    _require_same_college(confession, user)
    return respond({"confession": format_confession(confession, user["id"], with_comments=True)})


@router.post("/{confession_id}/react")
def react(confession_id: str, payload: ReactRequest, user=Depends(get_current_user)):
    if payload.type not in REACTION_TYPES:
        raise HTTPException(status_code=400, detail="Invalid reaction type")
    confession = _load_confession(confession_id)
    _require_same_college(confession, user)

    reacted = toggle_reaction(confession, user["id"], payload.type)
    updated = db["confession"].find_one({"_id": confession["_id"]})
    return respond({
        "reactionCounts": reaction_counts(updated),
        "userReactions": user_reactions(updated, user["id"]),
        "userReacted": reacted,
    })


@router.post("/{confession_id}/comments")
def add_comment(confession_id: str, payload: CommentRequest, user=Depends(get_current_user)):
    if to_object_id(confession_id) is None:
        raise HTTPException(status_code=400, detail="Invalid confession ID format")
    content = _comment_content(payload.content, "Comment")
    confession = _load_confession(confession_id)
    _require_same_college(confession, user)

    comment = Comment(user_id=user["id"], content=content)
    db["confession"].update_one(
        {"_id": confession["_id"]},
        {"$push": {"comments": comment.model_dump(by_alias=True)}, "$set": {"updated_at": now_utc()}},
    )
    updated = db["confession"].find_one({"_id": confession["_id"]}, {"comments": 1})
    total = len(_as_list(updated.get("comments")))

    author_id = confession.get("user_id")
    if author_id and author_id != user["id"]:
        create_notification(
            author_id,
            "comment",
            "New comment on your confession 💬",
            "Someone commented on your confession",
            data={"confessionId": str(confession["_id"]), "commentId": str(comment.id)},
        )
    logger.info("Comment %s added to confession %s", comment.id, confession_id)

    return JSONResponse(
        status_code=201,
        content=jsonable_encoder(respond({"comment": _format_comment(comment.model_dump(by_alias=True)), "totalComments": total})),
    )


@router.post("/{confession_id}/comments/{comment_id}/replies")
def add_reply(confession_id: str, comment_id: str, payload: CommentRequest, user=Depends(get_current_user)):
    if to_object_id(confession_id) is None:
        raise HTTPException(status_code=400, detail="Invalid confession ID format")
    comment_oid = to_object_id(comment_id)
    if comment_oid is None:
        raise HTTPException(status_code=400, detail="Invalid comment ID format")
    content = _comment_content(payload.content, "Reply")

    confession = _load_confession(confession_id)
    if not any(c.get("_id") == comment_oid for c in _as_list(confession.get("comments"))):
        raise HTTPException(status_code=404, detail="Comment not found")
    _require_same_college(confession, user)

    reply = Reply(user_id=user["id"], content=content)
    result = db["confession"].update_one(
        {"_id": confession["_id"], "comments._id": comment_oid},
        {"$push": {"comments.$.replies": reply.model_dump(by_alias=True)}, "$set": {"updated_at": now_utc()}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Comment not found")
    logger.info("Reply %s added to comment %s", reply.id, comment_id)

    return JSONResponse(status_code=201, content=jsonable_encoder(respond({"reply": _format_reply(reply.model_dump(by_alias=True))})))
