"""
Invitations Router
✅ Admins generate one-time signup links (optionally bound to an email)
✅ Public validation of a link and signup through it
"""

import logging
import secrets
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from gnosis.auth import database as users_db
from gnosis.auth.router import auth_payload
from gnosis.community.models import InvitationCreate, InvitationFilter, InvitationSignup
from gnosis.core.config import FRONTEND_URL
from gnosis.core.database import get_db, paginate, pagination_meta
from gnosis.core.dependencies import require_admin
from gnosis.core.responses import success_response
from gnosis.core.security import hash_password

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Invitations"])

INVALID_LINK_MSG = "Invalid or expired invitation link"


def signup_link(token: str) -> str:
    return f"{FRONTEND_URL.rstrip('/')}/signup?invitation={token}"


def invitation_query(created_by, status: str) -> dict:
    query = {"createdBy": created_by}
    if status == InvitationFilter.USED.value:
        query["isUsed"] = True
    elif status == InvitationFilter.UNUSED.value:
        query["isUsed"] = False
    elif status == InvitationFilter.EXPIRED.value:
        query["expiresAt"] = {"$lt": datetime.utcnow()}
    return query


async def find_open_invitation(db: AsyncIOMotorDatabase, token: str) -> dict:
    invitation = await db.invitations.find_one({
        "token": token,
        "isUsed": False,
        "expiresAt": {"$gt": datetime.utcnow()},
    })
    if not invitation:
        raise HTTPException(status_code=404, detail=INVALID_LINK_MSG)
    return invitation


# ==================== PUBLIC ENDPOINTS ====================

@router.get("/validate/{token}")
async def validate_invitation(token: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    invitation = await find_open_invitation(db, token)
    creator = await db.users.find_one(
        {"_id": invitation.get("createdBy")},
        {"firstName": 1, "lastName": 1, "email": 1},
    )
    return success_response("Invitation is valid", {"invitation": {
        "id": invitation["_id"],
        "email": invitation.get("email"),
        "role": invitation.get("role"),
        "expiresAt": invitation.get("expiresAt"),
        "createdBy": creator,
        "metadata": invitation.get("metadata", {}),
    }})


@router.post("/signup")
async def signup_with_invitation(data: InvitationSignup, db: AsyncIOMotorDatabase = Depends(get_db)):
    if not data.token:
        raise HTTPException(status_code=400, detail="Invitation token is required")

    invitation = await find_open_invitation(db, data.token)

    if invitation.get("email") and invitation["email"] != data.email:
        raise HTTPException(status_code=400, detail="This invitation is for a different email address")

    if await users_db.get_user_by_email(db, data.email):
        raise HTTPException(status_code=400, detail="User already exists with this email address")

    user = await users_db.create_user(db, {
        "email": data.email,
        "password": hash_password(data.password),
        "firstName": data.firstName,
        "lastName": data.lastName,
        "role": invitation.get("role") or "student",
        "provider": "local",
    })

    await db.invitations.update_one({"_id": invitation["_id"]}, {"$set": {
        "isUsed": True,
        "usedBy": user["_id"],
        "usedAt": datetime.utcnow(),
    }})
    logger.info(f"✅ Invitation {invitation['_id']} used by {user['email']}")

    return success_response("Account created successfully with invitation", auth_payload(user), status_code=201)


# ==================== ADMIN ENDPOINTS ====================

@router.post("/generate")
async def generate_invitation(
    data: InvitationCreate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    now = datetime.utcnow()
    invitation = {
        "token": secrets.token_hex(32),
        "createdBy": admin["_id"],
        "email": data.email,
        "role": "student",
        "expiresAt": now + timedelta(days=data.expiresInDays),
        "isUsed": False,
        "usedBy": None,
        "usedAt": None,
        "metadata": data.metadata,
        "createdAt": now,
    }
    result = await db.invitations.insert_one(invitation)

    return success_response("Signup link generated successfully", {
        "invitation": {
            "id": result.inserted_id,
            "token": invitation["token"],
            "email": invitation["email"],
            "expiresAt": invitation["expiresAt"],
            "role": invitation["role"],
            "metadata": invitation["metadata"],
        },
        "signupLink": signup_link(invitation["token"]),
        "expiresInDays": data.expiresInDays,
    })


@router.get("/")
async def list_invitations(
    status: InvitationFilter = InvitationFilter.ALL,
    page: int = 1,
    limit: int = 10,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    page, limit, skip = paginate(page, limit)
    query = invitation_query(admin["_id"], status.value)
    cursor = db.invitations.find(query).sort("createdAt", DESCENDING).skip(skip).limit(limit)

    invitations = []
    for invitation in await cursor.to_list(length=limit):
        if invitation.get("usedBy"):
            invitation["usedBy"] = await db.users.find_one(
                {"_id": invitation["usedBy"]},
                {"firstName": 1, "lastName": 1, "email": 1},
            ) or invitation["usedBy"]
        invitations.append(invitation)

    total = await db.invitations.count_documents(query)
    return success_response("Invitations retrieved successfully", {
        "invitations": invitations,
        "pagination": pagination_meta(page, limit, total, "Invitations"),
    })
