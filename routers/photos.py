import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from database import db, now_utc
from helpers import respond
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/photos", tags=["photos"])


class PhotoLikeRequest(BaseModel):
    photo_url: Optional[str] = Field(None, alias="photoUrl")


def toggle_photo_like(photo_url: str, user_id: str) -> dict:
    """
    Flip user_id's membership in the liker set of the photo at photo_url.

    The owner is found by matching the URL inside their photo list. The like
    count is the size of the set after the write; nothing else is stored.
    Returns None when no user owns the photo.
    """
    owner = db["user"].find_one({"photos.url": photo_url}, {"photos": 1, "name": 1})
    if not owner:
        return None
    index = next((i for i, p in enumerate(owner.get("photos") or []) if p.get("url") == photo_url), None)
    if index is None:
        return None

    likes = [uid for uid in owner["photos"][index].get("likes") or [] if uid]
    was_liked = user_id in likes
    if was_liked:
        likes = [uid for uid in likes if uid != user_id]
    else:
        likes.append(user_id)
    likes = list(dict.fromkeys(likes))

    result = db["user"].update_one(
        {"_id": owner["_id"], f"photos.{index}.url": photo_url},
        {"$set": {f"photos.{index}.likes": likes, "updated_at": now_utc()}},
    )
    if result.matched_count == 0:
        # The photo list shifted under us; report it as gone rather than touch another photo
        return None

    logger.info("User %s %s photo of %s (%d likes)", user_id, "unliked" if was_liked else "liked", owner["_id"], len(likes))
    return {"likeCount": len(likes), "isLiked": not was_liked}


@router.post("/like")
def like_photo(payload: PhotoLikeRequest, user=Depends(get_current_user)):
    if not payload.photo_url:
        raise HTTPException(status_code=400, detail="Photo URL is required")
    result = toggle_photo_like(payload.photo_url, user["id"])
    if result is None:
        raise HTTPException(status_code=404, detail="Photo not found")
    return respond(result)
