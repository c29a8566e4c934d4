import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt
from fastapi import Header, HTTPException
from passlib.context import CryptContext

from config import BCRYPT_ROUNDS, JWT_ALG, JWT_EXPIRES_DAYS, JWT_SECRET
from database import db, now_utc, to_object_id

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def create_token(user_id: str, expires_days: int = JWT_EXPIRES_DAYS) -> str:
    payload = {"user_id": str(user_id), "exp": now_utc() + timedelta(days=expires_days)}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> str:
    """Return the user id carried by a token, or raise 401."""
    try:
        data = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = data.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return user_id


def generate_one_time_token() -> str:
    # Email verification and password reset links
    return secrets.token_hex(32)


def get_current_user(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    if not authorization:
        raise HTTPException(status_code=401, detail="No token provided")
    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    user_id = decode_token(token.strip())
    oid = to_object_id(user_id)
    if oid is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db["user"].find_one({"_id": oid})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    user["id"] = str(user["_id"])
    return user
