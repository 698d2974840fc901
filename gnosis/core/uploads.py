# gnosis/core/uploads.py

"""
Image uploads to Cloudinary (question images, team-member photos, avatars)
"""

import logging
import re
from typing import Optional

import cloudinary
import cloudinary.uploader
from fastapi import HTTPException, UploadFile
from starlette.concurrency import run_in_threadpool

from gnosis.core.config import (
    CLOUDINARY_API_KEY,
    CLOUDINARY_API_SECRET,
    CLOUDINARY_CLOUD_NAME,
    MAX_UPLOAD_BYTES,
)

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}

cloudinary.config(
    cloud_name=CLOUDINARY_CLOUD_NAME,
    api_key=CLOUDINARY_API_KEY,
    api_secret=CLOUDINARY_API_SECRET,
    secure=True,
)


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")
    return slug or "untitled"


def public_id_from_url(url: Optional[str]) -> Optional[str]:
    """Cloudinary public id (folder path without extension) of a delivery URL"""
    if not url or "res.cloudinary.com" not in url:
        return None
    match = re.search(r"/upload/(?:v\d+/)?(.+?)(?:\.[a-zA-Z0-9]+)?$", url)
    return match.group(1) if match else None


async def read_image(file: UploadFile) -> bytes:
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="Only image files are allowed")
    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File too large. Maximum size is 5MB")
    return content


async def upload_image(file: UploadFile, folder: str) -> dict:
    """Upload an image and return {url, publicId}"""
    content = await read_image(file)
    try:
        result = await run_in_threadpool(
            cloudinary.uploader.upload,
            content,
            folder=folder,
            resource_type="image",
        )
    except Exception as e:
        logger.error(f"❌ Cloudinary upload failed: {e}")
        raise HTTPException(status_code=500, detail="Image upload failed")
    return {"url": result.get("secure_url"), "publicId": result.get("public_id")}


async def destroy_image(url: Optional[str]) -> bool:
    """Remove a previously uploaded image; failures are logged, not raised"""
    public_id = public_id_from_url(url)
    if not public_id:
        return False
    try:
        await run_in_threadpool(cloudinary.uploader.destroy, public_id)
        return True
    except Exception as e:
        logger.warning(f"⚠️  Could not delete Cloudinary image {public_id}: {e}")
        return False
