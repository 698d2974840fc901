# gnosis/core/dependencies.py

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError
from motor.motor_asyncio import AsyncIOMotorDatabase

from gnosis.auth.database import find_or_create_firebase_user, get_user_by_id, is_token_blacklisted
from gnosis.billing.database import find_valid_subscription
from gnosis.core.database import get_db
from gnosis.core.security import AuthError, decode_access_token, firebase_ready, verify_firebase_token

logger = logging.getLogger(__name__)


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


async def resolve_user(db: AsyncIOMotorDatabase, token: str) -> dict:
    """
    Firebase ID token first, Gnosis JWT second.
    Raises HTTPException(401) with the reason the token was rejected.
    """
    if firebase_ready():
        try:
            decoded = await verify_firebase_token(token)
            return await find_or_create_firebase_user(db, decoded)
        except AuthError:
            pass

    if await is_token_blacklisted(db, token):
        raise HTTPException(status_code=401, detail="Token has been invalidated. Please login again.")

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token or token expired.")

    user = await get_user_by_id(db, payload.get("userId"))
    if not user:
        raise HTTPException(status_code=401, detail="User not found.")
    return user


# ==================== DEPENDENCY FUNCTIONS ====================

async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> dict:
    """Authenticated user document (401 when missing or invalid)"""
    token = extract_bearer(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")
    return await resolve_user(db, token)


async def get_optional_user(
    authorization: Optional[str] = Header(None),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> Optional[dict]:
    """Authenticated user when a valid token is sent, otherwise None"""
    token = extract_bearer(authorization)
    if not token:
        return None
    try:
        return await resolve_user(db, token)
    except HTTPException:
        return None


async def get_bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    return extract_bearer(authorization)


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Access denied. Admin privileges required.")
    return user


async def require_student(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "student":
        raise HTTPException(status_code=403, detail="Access denied. Only students can perform this action.")
    return user


async def require_active_subscription(
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> dict:
    """Gate for premium content; admins always pass"""
    if user.get("role") == "admin":
        return user

    subscription = await find_valid_subscription(db, user["_id"])
    if not subscription:
        raise HTTPException(status_code=403, detail={
            "message": "Active subscription required",
            "requiresSubscription": True,
            "redirectTo": "/choose-plan",
        })
    return user
