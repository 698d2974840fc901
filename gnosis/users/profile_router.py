"""
Profile Router
The signed-in user's own profile, picture, password and account deletion.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase

from gnosis.auth import database as users_db
from gnosis.auth.models import STRONG_PASSWORD_RE
from gnosis.core.database import get_db
from gnosis.core.dependencies import get_current_user
from gnosis.core.responses import success_response
from gnosis.core.security import hash_password, verify_password
from gnosis.core.uploads import destroy_image, upload_image
from gnosis.learning.progression import user_overall_level
from gnosis.users.models import ChangePasswordRequest, DeleteAccountRequest, ProfileUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Profile"])

PROFILE_FIELDS = (
    "_id", "profilePic", "role", "email", "firstName", "lastName", "provider",
    "isEmailVerified", "lastLogin", "createdAt", "updatedAt",
)


def profile_view(user: dict) -> dict:
    """Profile fields only; password is always blanked for the edit form"""
    view = {field: user.get(field) for field in PROFILE_FIELDS}
    view["password"] = ""
    return view


async def _fresh_user(db: AsyncIOMotorDatabase, user: dict) -> dict:
    current = await users_db.get_user_by_id(db, user["_id"])
    if not current:
        raise HTTPException(status_code=404, detail="User not found")
    return current


@router.get("/")
async def get_profile(user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    current = await _fresh_user(db, user)
    overall = await user_overall_level(db, current["_id"])
    return success_response("Profile retrieved successfully", {
        "user": {**profile_view(current), "overallLevel": overall["overallLevel"]},
    })


@router.put("/")
async def update_profile(
    data: ProfileUpdate,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    first_name = (data.firstName or "").strip()
    last_name = (data.lastName or "").strip()
    if not first_name or not last_name:
        raise HTTPException(status_code=400, detail="First name and last name are required")
    if len(first_name) < 2:
        raise HTTPException(status_code=400, detail="First name must be at least 2 characters long")
    if len(last_name) < 2:
        raise HTTPException(status_code=400, detail="Last name must be at least 2 characters long")

    password = (data.password or "").strip()
    if password and len(data.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters long")

    current = await _fresh_user(db, user)
    updates = {"firstName": first_name, "lastName": last_name}

    if "profilePic" in data.model_fields_set:
        previous = current.get("profilePic")
        if data.profilePic and previous and previous != data.profilePic:
            await destroy_image(previous)
        updates["profilePic"] = data.profilePic or None

    if password:
        updates["password"] = hash_password(password)

    await users_db.update_user(db, current["_id"], updates)
    current.update(updates)
    return success_response("Profile updated successfully", {"user": profile_view(current)})


@router.post("/picture")
async def upload_profile_picture(
    image: UploadFile = File(...),
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    current = await _fresh_user(db, user)
    uploaded = await upload_image(image, folder="gnosis/profile_pictures")
    if current.get("profilePic"):
        await destroy_image(current["profilePic"])
    await users_db.update_user(db, current["_id"], {"profilePic": uploaded["url"]})
    return success_response("Profile picture uploaded successfully", {"profilePic": uploaded["url"]})


@router.delete("/picture")
async def delete_profile_picture(user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    current = await _fresh_user(db, user)
    if not current.get("profilePic"):
        raise HTTPException(status_code=400, detail="No profile picture to delete")
    await destroy_image(current["profilePic"])
    await users_db.update_user(db, current["_id"], {"profilePic": None})
    return success_response("Profile picture deleted successfully")


@router.put("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not data.currentPassword or not data.newPassword or not data.confirmPassword:
        raise HTTPException(status_code=400, detail="Current password, new password, and confirmation are required")
    if data.newPassword != data.confirmPassword:
        raise HTTPException(status_code=400, detail="New password confirmation does not match")
    if len(data.newPassword) < 6:
        raise HTTPException(status_code=400, detail="New password must be at least 6 characters long")
    if not STRONG_PASSWORD_RE.match(data.newPassword):
        raise HTTPException(
            status_code=400,
            detail="New password must contain at least one uppercase letter, one lowercase letter, and one number",
        )

    current = await _fresh_user(db, user)
    if not current.get("password"):
        raise HTTPException(status_code=400, detail="Password change not available for OAuth users")
    if not verify_password(data.currentPassword, current["password"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    await users_db.update_user(db, current["_id"], {"password": hash_password(data.newPassword)})
    return success_response("Password changed successfully")


@router.delete("/")
async def delete_account(
    data: Optional[DeleteAccountRequest] = Body(None),
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    current = await _fresh_user(db, user)
    password = data.password if data else None

    # social accounts have no password to confirm
    if current.get("password"):
        if not password:
            raise HTTPException(status_code=400, detail="Password is required to delete account")
        if not verify_password(password, current["password"]):
            raise HTTPException(status_code=400, detail="Incorrect password")

    await db.users.delete_one({"_id": current["_id"]})
    logger.info(f"✅ Account deleted: {current['email']}")
    return success_response("Account deleted successfully")
