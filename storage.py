"""
Image uploads to Cloudinary.

Only the resulting secure URL and the public id (needed to delete the
image later) are kept on our side. Credentials are set once in config.py.
"""
import logging
from typing import Dict, Optional

import cloudinary.exceptions
import cloudinary.uploader

from config import CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET, CLOUDINARY_CLOUD_NAME

logger = logging.getLogger(__name__)

ROOT_FOLDER = "campus-crush"


class StorageError(Exception):
    pass


def _configured() -> bool:
    return bool(CLOUDINARY_CLOUD_NAME and CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET)


def upload_image(content: bytes, folder: str, transformation: Optional[str] = None) -> Dict[str, str]:
    """Upload raw image bytes under ROOT_FOLDER/<folder>; returns {"url", "public_id"}."""
    if not _configured():
        raise StorageError("Image storage not configured")

    options = {"folder": f"{ROOT_FOLDER}/{folder}", "resource_type": "image"}
    if transformation:
        options["transformation"] = transformation
    try:
        result = cloudinary.uploader.upload(content, **options)
    except cloudinary.exceptions.Error as e:
        raise StorageError(f"Upload failed: {e}") from e

    return {"url": result["secure_url"], "public_id": result["public_id"]}


def destroy_image(public_id: str) -> bool:
    if not _configured():
        raise StorageError("Image storage not configured")
    try:
        result = cloudinary.uploader.destroy(public_id)
    except cloudinary.exceptions.Error as e:
        raise StorageError(f"Delete failed: {e}") from e
    return result.get("result") == "ok"
