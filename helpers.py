from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, UploadFile

from config import MAX_UPLOAD_BYTES
from database import as_utc, now_utc


def respond(data: Optional[Dict[str, Any]] = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def format_timestamp(value: Optional[datetime]) -> str:
    """Relative time for list views: now, 5m ago, 3h ago, 2d ago, else the date."""
    if value is None:
        return ""
    value = as_utc(value)
    seconds = (now_utc() - value).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)
    if minutes < 1:
        return "now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return value.strftime("%d/%m/%Y")


def time_ago(value: Optional[datetime]) -> str:
    """Compact relative time used on the confession board: now, 5m, 3h, 2d, 1w."""
    if value is None:
        return "now"
    seconds = int((now_utc() - as_utc(value)).total_seconds())
    if seconds < 60:
        return "now"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    if seconds < 604800:
        return f"{seconds // 86400}d"
    return f"{seconds // 604800}w"


def placeholder_avatar(name: Optional[str], size: int = 50) -> str:
    initial = (name or "?")[:1]
    return f"https://via.placeholder.com/{size}x{size}/7B2CBF/FFFFFF?text={initial}"


def avatar_url(user: Optional[Dict[str, Any]], size: int = 50) -> Optional[str]:
    if not user:
        return None
    photos = user.get("photos") or []
    main = next((p for p in photos if p.get("is_main")), photos[0] if photos else None)
    if main and main.get("url"):
        return main["url"]
    return placeholder_avatar(user.get("name"), size)


def serialize_photo(photo: Dict[str, Any], viewer_id: Optional[str] = None) -> Dict[str, Any]:
    likes = [uid for uid in (photo.get("likes") or []) if uid]
    return {
        "url": photo.get("url"),
        "publicId": photo.get("public_id"),
        "isMain": bool(photo.get("is_main")),
        "likeCount": len(set(likes)),
        "isLikedByCurrentUser": viewer_id in likes if viewer_id else False,
    }


def serialize_profile(user: Dict[str, Any], viewer_id: Optional[str] = None, include_email: bool = True) -> Dict[str, Any]:
    instagram = user.get("instagram") or {}
    profile = {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "college": user.get("college"),
        "photos": [serialize_photo(p, viewer_id) for p in user.get("photos") or []],
        "bio": user.get("bio") or "",
        "age": user.get("age"),
        "year": user.get("year"),
        "branch": user.get("branch"),
        "gender": user.get("gender"),
        "interests": user.get("interests") or [],
        "lookingFor": user.get("looking_for") or "Not sure",
        "preference": user.get("preference"),
        "instagram": {
            "username": instagram.get("username"),
            "isPublic": bool(instagram.get("is_public")),
        },
    }
    if include_email:
        profile["email"] = user.get("email")
        profile["isVerified"] = bool(user.get("is_verified"))
    return profile


async def read_image_upload(upload: Optional[UploadFile], label: str) -> bytes:
    """Read an uploaded image into memory, enforcing type and size limits."""
    if upload is None or not upload.filename:
        raise HTTPException(status_code=400, detail=f"{label} is required")
    if not (upload.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are allowed")
    content = await upload.read(MAX_UPLOAD_BYTES + 1)
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail=f"{label} exceeds the 5MB limit")
    if not content:
        raise HTTPException(status_code=400, detail=f"{label} is empty")
    return content


def participant_ids(match: Dict[str, Any]) -> List[str]:
    return [match.get("user1_id"), match.get("user2_id")]
