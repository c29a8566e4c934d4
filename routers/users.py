import logging
import re
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Path, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

import storage
from config import MAX_PHOTOS
from database import db, now_utc, to_object_id
from helpers import read_image_upload, respond, serialize_photo, serialize_profile
from schemas import GENDERS, LOOKING_FOR, PREFERENCES, YEARS, Gender, LookingFor, Photo, Preference, Year
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

INSTAGRAM_RE = re.compile(r"^[a-zA-Z0-9._]+$")

BRANCHES = [
    ("CSE", "Computer Science Engineering"),
    ("IT", "Information Technology"),
    ("SE", "Software Engineering"),
    ("EE", "Electrical Engineering"),
    ("ECE", "Electronics & Communication"),
    ("ENTC", "Electronics & Telecommunication"),
    ("ME", "Mechanical Engineering"),
    ("CE", "Civil Engineering"),
    ("CHE", "Chemical Engineering"),
    ("BME", "Biomedical Engineering"),
    ("AE", "Aerospace Engineering"),
    ("AIDS", "AI & Data Science"),
    ("ML", "Machine Learning"),
    ("AI", "Artificial Intelligence"),
    ("DS", "Data Science"),
    ("CYBER", "Cyber Security"),
    ("IOT", "Internet of Things"),
    ("ROBOTICS", "Robotics Engineering"),
    ("AUTO", "Automobile Engineering"),
    ("PROD", "Production Engineering"),
    ("TEXTILE", "Textile Engineering"),
    ("FOOD", "Food Technology"),
    ("BIOTECH", "Biotechnology"),
    ("MBA", "Master of Business Administration"),
    ("BBA", "Bachelor of Business Administration"),
    ("MKTG", "Marketing"),
    ("FIN", "Finance"),
    ("ACC", "Accounting"),
    ("ECON", "Economics"),
    ("PSYCH", "Psychology"),
    ("BIO", "Biology"),
    ("CHEM", "Chemistry"),
    ("PHY", "Physics"),
    ("MATH", "Mathematics"),
    ("STAT", "Statistics"),
    ("ENG", "English"),
    ("HIST", "History"),
    ("POLSCI", "Political Science"),
    ("SOC", "Sociology"),
    ("PHIL", "Philosophy"),
    ("ART", "Art & Design"),
    ("MUSIC", "Music"),
    ("THEATER", "Theater"),
    ("COMM", "Communications"),
    ("JOURN", "Journalism"),
    ("MED", "Medicine"),
    ("MBBS", "Bachelor of Medicine"),
    ("NURS", "Nursing"),
    ("PHARMC", "Pharmacy"),
    ("LAW", "Law"),
    ("EDU", "Education"),
    ("ARCH", "Architecture"),
    ("OTHER", "Other"),
]

AGE_MIN, AGE_MAX = 18, 30


class InstagramUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    username: Optional[str] = None
    is_public: bool = False


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: Optional[str] = None
    bio: Optional[str] = None
    age: Optional[int] = None
    year: Optional[Year] = None
    branch: Optional[str] = None
    gender: Optional[Gender] = None
    interests: Optional[List[str]] = None
    looking_for: Optional[LookingFor] = None
    preference: Optional[Preference] = None
    instagram: Optional[InstagramUpdate] = None

    @field_validator("year", "gender", "looking_for", "preference", mode="before")
    @classmethod
    def blank_is_unset(cls, v):
        return None if v == "" else v


@router.get("/profile")
def get_profile(user=Depends(get_current_user)):
    return respond({"user": serialize_profile(user, viewer_id=user["id"])})


@router.put("/profile")
def update_profile(update: ProfileUpdate, user=Depends(get_current_user)):
    if update.age is not None and not AGE_MIN <= update.age <= AGE_MAX:
        raise HTTPException(status_code=400, detail="Age must be between 18 and 30")
    if update.bio is not None and len(update.bio) > 500:
        raise HTTPException(status_code=400, detail="Bio must be less than 500 characters")
    if update.interests is not None:
        if len(update.interests) > 10:
            raise HTTPException(status_code=400, detail="Maximum 10 interests allowed")
        if any(len(i) > 50 for i in update.interests):
            raise HTTPException(status_code=400, detail="Interests must be at most 50 characters each")
    if update.branch is not None and len(update.branch.strip()) > 100:
        raise HTTPException(status_code=400, detail="Branch name cannot exceed 100 characters")

    # Only fields present in the body are written; explicit "" clears an enum
    sent = update.model_fields_set
    updates = {}
    for field in ("age", "year", "gender", "interests", "looking_for", "preference"):
        if field in sent:
            updates[field] = getattr(update, field)
    if "name" in sent and update.name is not None:
        if not update.name.strip():
            raise HTTPException(status_code=400, detail="Name cannot be empty")
        updates["name"] = update.name.strip()
    if "bio" in sent:
        updates["bio"] = (update.bio or "").strip()
    if "branch" in sent:
        updates["branch"] = update.branch.strip() if update.branch else None
    if "instagram" in sent and update.instagram is not None:
        username = (update.instagram.username or "").strip()
        if len(username) > 30:
            raise HTTPException(status_code=400, detail="Instagram username cannot exceed 30 characters")
        if username and not INSTAGRAM_RE.match(username):
            raise HTTPException(
                status_code=400,
                detail="Instagram username can only contain letters, numbers, dots, and underscores",
            )
        updates["instagram"] = {"username": username or None, "is_public": update.instagram.is_public}

    if updates:
        updates["updated_at"] = now_utc()
        db["user"].update_one({"_id": user["_id"]}, {"$set": updates})
    fresh = db["user"].find_one({"_id": user["_id"]})
    return respond({"user": serialize_profile(fresh, viewer_id=user["id"])}, "Profile updated successfully")


@router.post("/upload-photo")
async def upload_photo(photo: Optional[UploadFile] = File(None), user=Depends(get_current_user)):
    if photo is None:
        raise HTTPException(status_code=400, detail="No image file provided")
    if len(user.get("photos") or []) >= MAX_PHOTOS:
        raise HTTPException(status_code=400, detail=f"Maximum {MAX_PHOTOS} photos allowed")
    content = await read_image_upload(photo, "Photo")
    return await run_in_threadpool(_store_photo, user, content)


def _store_photo(user: dict, content: bytes) -> dict:
    stored = storage.upload_image(content, "users", transformation="c_fill,h_800,q_auto,w_800")
    is_first = not user.get("photos")
    new_photo = Photo(url=stored["url"], public_id=stored["public_id"], is_main=is_first)

    # Guard against racing uploads past the limit
    result = db["user"].update_one(
        {"_id": user["_id"], f"photos.{MAX_PHOTOS - 1}": {"$exists": False}},
        {"$push": {"photos": new_photo.model_dump()}, "$set": {"updated_at": now_utc()}},
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=400, detail=f"Maximum {MAX_PHOTOS} photos allowed")
    logger.info("User %s uploaded photo %s", user["id"], new_photo.public_id)
    return respond({"photo": serialize_photo(new_photo.model_dump(), user["id"])}, "Photo uploaded successfully")


@router.delete("/photo/{public_id:path}")
def delete_photo(public_id: str = Path(...), user=Depends(get_current_user)):
    if not any(p.get("public_id") == public_id for p in user.get("photos") or []):
        raise HTTPException(status_code=404, detail="Photo not found")

    try:
        storage.destroy_image(public_id)
    except storage.StorageError:
        # The record is removed regardless
        logger.exception("Remote delete failed for photo %s", public_id)

    result = db["user"].update_one(
        {"_id": user["_id"]},
        {"$pull": {"photos": {"public_id": public_id}}, "$set": {"updated_at": now_utc()}},
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=404, detail="Photo not found")
    # Promote the first remaining photo when the main one went away
    db["user"].update_one(
        {"_id": user["_id"], "photos.0": {"$exists": True}, "photos.is_main": {"$ne": True}},
        {"$set": {"photos.0.is_main": True}},
    )
    logger.info("User %s deleted photo %s", user["id"], public_id)
    return respond(message="Photo deleted successfully")


@router.put("/photo/{public_id:path}/main")
def set_main_photo(public_id: str = Path(...), user=Depends(get_current_user)):
    fresh = db["user"].find_one({"_id": user["_id"]}, {"photos": 1}) or {}
    photos = fresh.get("photos") or []
    if not any(p.get("public_id") == public_id for p in photos):
        raise HTTPException(status_code=404, detail="Photo not found")

    # Only the is_main flags are written, each guarded by the photo at that position
    query = {"_id": user["_id"]}
    flags = {}
    for i, p in enumerate(photos):
        query[f"photos.{i}.public_id"] = p.get("public_id")
        flags[f"photos.{i}.is_main"] = p.get("public_id") == public_id
    result = db["user"].update_one(query, {"$set": {**flags, "updated_at": now_utc()}})
    if result.matched_count == 0:
        raise HTTPException(status_code=409, detail="Photos changed, please try again")
    return respond(message="Main photo updated successfully")


@router.get("/discover")
def discover(limit: int = 10, user=Depends(get_current_user)):
    limit = max(1, min(limit, 50))
    # Exclude the caller and anyone they have already swiped on
    swiped_ids = {s["swiped_id"] for s in db["swipe"].find({"swiper_id": user["id"]}, {"swiped_id": 1, "_id": 0})}
    excluded = [user["_id"]] + [oid for oid in map(to_object_id, swiped_ids) if oid is not None]

    candidates = db["user"].find({
        "_id": {"$nin": excluded},
        "college": user.get("college"),
        "name": {"$exists": True, "$ne": ""},
        "photos.0": {"$exists": True},
    }).limit(limit)

    users = []
    for u in candidates:
        profile = serialize_profile(u, viewer_id=user["id"], include_email=False)
        profile["isVerified"] = bool(u.get("is_verified"))
        users.append(profile)
    logger.info("Discover for %s returned %d users", user["id"], len(users))
    return respond({"users": users})


@router.get("/profile-options")
def profile_options():
    return respond({
        "years": YEARS,
        "branches": [{"code": code, "name": name} for code, name in BRANCHES],
        "genders": GENDERS,
        "lookingFor": LOOKING_FOR,
        "preferences": PREFERENCES,
        "ageRange": {"min": AGE_MIN, "max": AGE_MAX},
    })
