import os

import cloudinary
from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "campus_crush")

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "campus-crush-secret")
JWT_ALG = "HS256"
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", 7))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))
VERIFICATION_TOKEN_HOURS = 24
RESET_TOKEN_HOURS = 1

# Image storage (Cloudinary)
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
cloudinary.config(
    cloud_name=CLOUDINARY_CLOUD_NAME,
    api_key=CLOUDINARY_API_KEY,
    api_secret=CLOUDINARY_API_SECRET,
    secure=True,
)
MAX_UPLOAD_BYTES = 5 * 1024 * 1024
MAX_PHOTOS = 6

# Email
APP_URL = os.getenv("APP_URL", "http://localhost:5001")
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() in ("1", "true", "yes")
EMAIL_FROM = os.getenv("EMAIL_FROM", SMTP_USER or "no-reply@campuscrush.app")

# Misc
PAGE_SIZE = 20
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 5001))
