import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, TypeAdapter, ValidationError
from pymongo.errors import DuplicateKeyError

import mailer
import storage
from config import RESET_TOKEN_HOURS, VERIFICATION_TOKEN_HOURS
from database import as_utc, create_document, db, now_utc, to_object_id
from helpers import read_image_upload, respond, serialize_profile
from schemas import StoredImage, User, VerificationPhotos
from security import create_token, generate_one_time_token, get_current_user, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 6
EMAIL_ADAPTER = TypeAdapter(EmailStr)


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class EmailRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    password: Optional[str] = None


def college_from_email(email: str) -> str:
    """abc@mit.edu -> MIT"""
    domain = email.split("@", 1)[1]
    return domain.split(".")[0].upper()


def _summary(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "college": user.get("college"),
        "isVerified": bool(user.get("is_verified")),
    }


def _find_by_valid_token(field: str, expires_field: str, token: str) -> Optional[dict]:
    user = db["user"].find_one({field: token})
    if not user:
        return None
    expires = as_utc(user.get(expires_field))
    if expires is None or expires <= now_utc():
        return None
    return user


@router.post("/register")
async def register(
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    selfie_photo: Optional[UploadFile] = File(None, alias="selfiePhoto"),
    college_id_photo: Optional[UploadFile] = File(None, alias="collegeIdPhoto"),
):
    if not name or not name.strip() or not email or not password:
        raise HTTPException(status_code=400, detail="All fields are required")
    if selfie_photo is None or college_id_photo is None:
        raise HTTPException(status_code=400, detail="Both selfie and college ID photos are required")
    email = email.strip().lower()
    if "@" not in email or not email.split("@", 1)[1]:
        raise HTTPException(status_code=400, detail="Please enter a valid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    try:
        email = EMAIL_ADAPTER.validate_python(email)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Please enter a valid email address")

    selfie_bytes = await read_image_upload(selfie_photo, "Selfie photo")
    college_id_bytes = await read_image_upload(college_id_photo, "College ID photo")

    # Uploads, hashing and store calls block; keep them off the event loop
    return await run_in_threadpool(_create_account, name.strip(), email, password, selfie_bytes, college_id_bytes)


def _create_account(name: str, email: str, password: str, selfie_bytes: bytes, college_id_bytes: bytes) -> JSONResponse:
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists")

    # Both images must be stored before the account exists
    try:
        selfie = storage.upload_image(selfie_bytes, "verification/selfies")
    except storage.StorageError:
        logger.exception("Selfie upload failed for %s", email)
        raise HTTPException(status_code=500, detail="Failed to upload selfie")
    try:
        college_id = storage.upload_image(college_id_bytes, "verification/college-ids")
    except storage.StorageError:
        logger.exception("College ID upload failed for %s", email)
        raise HTTPException(status_code=500, detail="Failed to upload college ID")

    verification_token = generate_one_time_token()
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        college=college_from_email(email),
        verification_token=verification_token,
        verification_token_expires=now_utc() + timedelta(hours=VERIFICATION_TOKEN_HOURS),
        verification_photos=VerificationPhotos(
            selfie=StoredImage(**selfie),
            college_id=StoredImage(**college_id),
        ),
    )

    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")
    logger.info("Registered user %s (%s)", user_id, user.college)

    if not mailer.send_verification_email(email, user.name, verification_token):
        logger.warning("Verification email not delivered to user %s", user_id)

    doc = db["user"].find_one({"_id": to_object_id(user_id)})
    return JSONResponse(
        status_code=201,
        content=respond(
            {"token": create_token(user_id), "user": _summary(doc)},
            "Registration successful! Please check your email to verify your account.",
        ),
    )


@router.post("/login")
def login(payload: LoginRequest):
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password required")
    user = db["user"].find_one({"email": payload.email.strip().lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return respond({"token": create_token(str(user["_id"])), "user": _summary(user)}, "Login successful")


@router.post("/logout")
def logout():
    # Tokens are stateless; the client discards its copy
    return respond(message="Logout successful")


@router.get("/me")
def me(user=Depends(get_current_user)):
    return respond({"user": serialize_profile(user, viewer_id=user["id"])})


@router.get("/verify-email/{token}")
def verify_email(token: str):
    user = _find_by_valid_token("verification_token", "verification_token_expires", token)
    if not user:
        raise HTTPException(status_code=400, detail="Invalid or expired verification link")
    db["user"].update_one(
        {"_id": user["_id"], "verification_token": token},
        {
            "$set": {"is_verified": True, "updated_at": now_utc()},
            "$unset": {"verification_token": "", "verification_token_expires": ""},
        },
    )
    logger.info("Email verified for user %s", user["_id"])
    return respond(message="Email verified successfully")


@router.post("/resend-verification")
def resend_verification(payload: EmailRequest):
    if not payload.email:
        raise HTTPException(status_code=400, detail="Email is required")
    user = db["user"].find_one({"email": payload.email.strip().lower()})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.get("is_verified"):
        raise HTTPException(status_code=400, detail="Email is already verified")

    token = generate_one_time_token()
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {
            "verification_token": token,
            "verification_token_expires": now_utc() + timedelta(hours=VERIFICATION_TOKEN_HOURS),
            "updated_at": now_utc(),
        }},
    )
    mailer.send_verification_email(user["email"], user.get("name", ""), token)
    return respond(message="Verification email sent successfully")


@router.post("/forgot-password")
def forgot_password(payload: EmailRequest):
    if not payload.email:
        raise HTTPException(status_code=400, detail="Email is required")
    # Same answer whether or not the account exists
    message = "If an account exists with this email, you will receive password reset instructions."
    user = db["user"].find_one({"email": payload.email.strip().lower()})
    if not user:
        return respond(message=message)

    token = generate_one_time_token()
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {
            "reset_password_token": token,
            "reset_password_expires": now_utc() + timedelta(hours=RESET_TOKEN_HOURS),
            "updated_at": now_utc(),
        }},
    )
    mailer.send_password_reset_email(user["email"], user.get("name", ""), token)
    return respond(message=message)


@router.get("/reset-password/{token}")
def check_reset_token(token: str):
    if not _find_by_valid_token("reset_password_token", "reset_password_expires", token):
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    return respond({"valid": True})


@router.post("/reset-password/{token}")
def reset_password(token: str, payload: ResetPasswordRequest):
    if not payload.password or len(payload.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")
    user = _find_by_valid_token("reset_password_token", "reset_password_expires", token)
    if not user:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    result = db["user"].update_one(
        {"_id": user["_id"], "reset_password_token": token},
        {
            "$set": {"password_hash": hash_password(payload.password), "updated_at": now_utc()},
            "$unset": {"reset_password_token": "", "reset_password_expires": ""},
        },
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    logger.info("Password reset for user %s", user["_id"])
    return respond(message="Password reset successful")
