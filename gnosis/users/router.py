"""
Users Router
✅ Admin user directory (search, students, edit names)
✅ Student overview with per-category level progress
✅ Own password update and daily question count
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from gnosis.auth import database as users_db
from gnosis.core.database import get_db, paginate, pagination_meta, to_object_id
from gnosis.core.dependencies import get_current_user, require_admin
from gnosis.core.responses import success_response
from gnosis.core.security import hash_password, verify_password
from gnosis.users.models import UpdatePasswordRequest, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"])

HIDDEN_FIELDS = {"password": 0, "resetPasswordOTP": 0, "emailVerificationOTP": 0}
DAILY_QUESTION_GOAL = 10
MAX_NAME_LENGTH = 50


# ==================== HELPER FUNCTIONS ====================

def search_query(search: Optional[str], base: Optional[dict] = None) -> dict:
    query = dict(base or {})
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"firstName": pattern}, {"lastName": pattern}, {"email": pattern}]
    return query


async def _paged_users(db: AsyncIOMotorDatabase, query: dict, page: int, limit: int):
    page, limit, skip = paginate(page, limit)
    cursor = db.users.find(query, HIDDEN_FIELDS).sort("createdAt", DESCENDING).skip(skip).limit(limit)
    users = await cursor.to_list(length=limit)
    total = await db.users.count_documents(query)
    return users, page, limit, total


def student_progress(user_levels: list[dict], branches: dict) -> dict:
    """
    Completed levels per category (currentLevel - 1 for each branch) plus
    the single highest level reached across branches.
    """
    progress = {"math": 0, "reading_writing": 0}
    highest = {"currentLevel": 0, "branchName": None, "category": None}
    for ul in user_levels:
        branch = branches.get(ul.get("branchId"))
        if not branch:
            continue
        category = branch.get("category")
        progress[category] = progress.get(category, 0) + max(0, ul.get("currentLevel", 1) - 1)
        if ul.get("currentLevel", 0) > highest["currentLevel"]:
            highest = {
                "currentLevel": ul["currentLevel"],
                "branchName": branch.get("name"),
                "category": category,
            }
    progress["total"] = progress["math"] + progress["reading_writing"]
    return {"progress": progress, "highestLevel": highest}


# ==================== ADMIN ENDPOINTS ====================

@router.get("/")
async def list_users(
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    users, page, limit, total = await _paged_users(db, search_query(search), page, limit)
    return success_response("Users retrieved successfully", {
        "users": users,
        "pagination": pagination_meta(page, limit, total, "Users"),
    })


@router.get("/students")
async def list_students(
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query = search_query(search, {"role": "student"})
    students, page, limit, total = await _paged_users(db, query, page, limit)
    return success_response("Students retrieved successfully", {
        "students": students,
        "pagination": pagination_meta(page, limit, total, "Students"),
    })


@router.get("/student-overview")
async def student_overview(
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    category: Optional[str] = None,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Students with their level progress. `category` narrows the list to the
    "lowest score" or "highest score" students by highest level reached.
    """
    page, limit, skip = paginate(page, limit)
    students = await db.users.find(
        search_query(search, {"role": "student"}),
        {"firstName": 1, "lastName": 1, "email": 1, "profilePic": 1, "lastLogin": 1, "createdAt": 1},
    ).sort("createdAt", DESCENDING).to_list(length=None)

    student_ids = [s["_id"] for s in students]
    levels = await db.user_levels.find({"userId": {"$in": student_ids}}).to_list(length=None)
    branches = {b["_id"]: b for b in await db.branches.find({}, {"name": 1, "category": 1}).to_list(length=None)}

    rows = []
    for student in students:
        own = [ul for ul in levels if ul.get("userId") == student["_id"]]
        rows.append({**student, **student_progress(own, branches)})

    applied = {}
    if category and category.lower() != "all":
        applied["category"] = category
        if rows and category.lower() in ("lowest score", "highest score"):
            reached = [r["highestLevel"]["currentLevel"] for r in rows]
            target = min(reached) if category.lower() == "lowest score" else max(reached)
            rows = [r for r in rows if r["highestLevel"]["currentLevel"] == target]

    total = len(rows)
    return success_response("Student overview retrieved successfully", {
        "students": rows[skip:skip + limit],
        "pagination": pagination_meta(page, limit, total, "Students"),
        "filters": applied,
    })


# ==================== SELF-SERVICE ENDPOINTS ====================

@router.get("/daily-questions")
async def daily_questions(user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    now = datetime.utcnow()
    answered_today = await db.user_answers.count_documents({
        "userId": user["_id"],
        "answeredAt": {"$gte": now - timedelta(hours=24)},
    })
    return success_response("Daily questions count retrieved successfully", {
        "dailyQuestionsCount": answered_today,
        "totalQuestionsAnswered": await db.user_answers.count_documents({"userId": user["_id"]}),
        "date": now.date().isoformat(),
        "goal": DAILY_QUESTION_GOAL,
        "progressPercentage": min(round(answered_today / DAILY_QUESTION_GOAL * 100), 100),
    })


@router.put("/me/password")
async def update_own_password(
    data: UpdatePasswordRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not data.oldPassword or not data.newPassword or not data.confirmNewPassword:
        raise HTTPException(
            status_code=400,
            detail="Old password, new password, and confirm new password are required",
        )
    if data.newPassword != data.confirmNewPassword:
        raise HTTPException(status_code=400, detail="New password and confirm password do not match")
    if len(data.newPassword) < 6:
        raise HTTPException(status_code=400, detail="New password must be at least 6 characters long")

    current = await users_db.get_user_by_id(db, user["_id"])
    if not current:
        raise HTTPException(status_code=404, detail="User not found")
    if not current.get("password"):
        raise HTTPException(
            status_code=400,
            detail="This account does not have a password set. Please use your Google account to sign in.",
        )
    if not verify_password(data.oldPassword, current["password"]):
        raise HTTPException(status_code=401, detail="Old password is incorrect")
    if verify_password(data.newPassword, current["password"]):
        raise HTTPException(status_code=400, detail="New password must be different from the old password")

    await users_db.update_user(db, current["_id"], {"password": hash_password(data.newPassword)})
    return success_response("Password updated successfully")


# ==================== SINGLE USER ====================

@router.get("/{user_id}")
async def get_user(user_id: str, admin: dict = Depends(require_admin), db: AsyncIOMotorDatabase = Depends(get_db)):
    user = await db.users.find_one({"_id": to_object_id(user_id, "user")}, HIDDEN_FIELDS)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return success_response("User retrieved successfully", {"user": user})


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    data: UserUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    oid = to_object_id(user_id, "user")
    if not data.firstName or not data.lastName:
        raise HTTPException(status_code=400, detail="First name and last name are required")
    if len(data.firstName) > MAX_NAME_LENGTH:
        raise HTTPException(status_code=400, detail="First name cannot exceed 50 characters")
    if len(data.lastName) > MAX_NAME_LENGTH:
        raise HTTPException(status_code=400, detail="Last name cannot exceed 50 characters")

    if not await db.users.find_one({"_id": oid}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="User not found")

    await users_db.update_user(db, oid, {"firstName": data.firstName.strip(), "lastName": data.lastName.strip()})
    user = await db.users.find_one({"_id": oid}, HIDDEN_FIELDS)
    return success_response("User updated successfully", {"user": user})
