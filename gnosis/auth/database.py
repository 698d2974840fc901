import random
from datetime import datetime, timedelta
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from gnosis.core.database import maybe_object_id

# ==================== USER CRUD ====================

PUBLIC_EXCLUDE = ("password", "resetPasswordOTP", "emailVerificationOTP")


def public_user(user: Optional[dict]) -> Optional[dict]:
    """User document without credentials or pending OTPs"""
    if user is None:
        return None
    return {k: v for k, v in user.items() if k not in PUBLIC_EXCLUDE}


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def split_display_name(name: Optional[str]) -> tuple[str, str]:
    parts = (name or "").strip().split()
    if not parts:
        return "User", ""
    return parts[0], " ".join(parts[1:])


async def get_user_by_id(db: AsyncIOMotorDatabase, user_id) -> Optional[dict]:
    oid = maybe_object_id(user_id)
    if oid is None:
        return None
    return await db.users.find_one({"_id": oid})


async def get_user_by_email(db: AsyncIOMotorDatabase, email: str) -> Optional[dict]:
    return await db.users.find_one({"email": normalize_email(email)})


async def create_user(db: AsyncIOMotorDatabase, data: dict) -> dict:
    now = datetime.utcnow()
    user = {
        "email": normalize_email(data["email"]),
        "password": data.get("password"),
        "firstName": data.get("firstName", "User"),
        "lastName": data.get("lastName", ""),
        "role": data.get("role", "student"),
        "provider": data.get("provider", "local"),
        "firebaseUid": data.get("firebaseUid"),
        "appleId": data.get("appleId"),
        "profilePic": data.get("profilePic", ""),
        "isEmailVerified": data.get("isEmailVerified", False),
        "lastLogin": data.get("lastLogin", now),
        "createdAt": now,
        "updatedAt": now,
    }
    result = await db.users.insert_one(user)
    user["_id"] = result.inserted_id
    return user


async def update_user(db: AsyncIOMotorDatabase, user_id, updates: dict) -> None:
    updates = dict(updates)
    updates["updatedAt"] = datetime.utcnow()
    await db.users.update_one({"_id": user_id}, {"$set": updates})


async def touch_last_login(db: AsyncIOMotorDatabase, user: dict) -> None:
    now = datetime.utcnow()
    await db.users.update_one({"_id": user["_id"]}, {"$set": {"lastLogin": now}})
    user["lastLogin"] = now


async def find_or_create_firebase_user(db: AsyncIOMotorDatabase, decoded: dict) -> dict:
    """
    Resolve a verified Firebase identity to a Gnosis user:
    by firebaseUid, else by email (linking the account), else a new google user.
    """
    uid = decoded.get("uid")
    email = normalize_email(decoded.get("email", ""))
    picture = decoded.get("picture", "")

    user = await db.users.find_one({"firebaseUid": uid})
    if user:
        await touch_last_login(db, user)
        return user

    if email:
        user = await db.users.find_one({"email": email})
        if user:
            link = {
                "firebaseUid": uid,
                "provider": "google",
                "isEmailVerified": True,
                "lastLogin": datetime.utcnow(),
            }
            if picture and not user.get("profilePic"):
                link["profilePic"] = picture
            await update_user(db, user["_id"], link)
            user.update(link)
            return user

    first_name, last_name = split_display_name(decoded.get("name"))
    return await create_user(db, {
        "email": email,
        "firstName": first_name,
        "lastName": last_name,
        "provider": "google",
        "firebaseUid": uid,
        "profilePic": picture,
        "isEmailVerified": bool(decoded.get("email_verified", True)),
    })


# ==================== TOKEN BLACKLIST ====================

async def blacklist_token(db: AsyncIOMotorDatabase, token: str, user_id, expires_at: datetime) -> None:
    await db.token_blacklist.update_one(
        {"token": token},
        {"$setOnInsert": {"token": token, "userId": user_id, "expiresAt": expires_at, "createdAt": datetime.utcnow()}},
        upsert=True
    )


async def is_token_blacklisted(db: AsyncIOMotorDatabase, token: str) -> bool:
    return await db.token_blacklist.find_one({"token": token}) is not None


# ==================== OTP ====================

def generate_otp() -> str:
    return str(random.SystemRandom().randint(1000, 9999))


def new_otp(minutes: int) -> dict:
    return {
        "code": generate_otp(),
        "expiresAt": datetime.utcnow() + timedelta(minutes=minutes),
        "attempts": 0,
    }
