"""
Achievement Router
User-facing badge progress and admin management of achievement definitions
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from gnosis.core.config import MAX_LEVELS
from gnosis.core.database import get_db, to_object_id
from gnosis.core.dependencies import get_current_user, require_admin
from gnosis.core.responses import success_response
from gnosis.learning.database import branch_brief, get_branch_or_404
from gnosis.learning.models import (
    AchievementCreate,
    AchievementType,
    AchievementUpdate,
    CATEGORIES,
    INVALID_CATEGORY_MSG,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Achievements"])

UNKNOWN_BRANCH = {"_id": None, "name": "Unknown Branch", "icon": "❓"}


# ==================== HELPER FUNCTIONS ====================

def _required(achievement: dict) -> int:
    requirements = achievement.get("requirements") or {}
    if _is_daily(achievement):
        return requirements.get("questionsAnswered") or 1
    return requirements.get("levelsCompleted") or 1


def _is_daily(achievement: dict) -> bool:
    return achievement.get("type") == AchievementType.DAILY.value


def _reset_today(user_achievement: Optional[dict]) -> bool:
    """Daily progress only counts on the UTC day it was last reset"""
    last_reset = (user_achievement or {}).get("lastResetDate")
    return bool(last_reset) and last_reset.date() == datetime.utcnow().date()


def _current_progress(achievement: dict, user_achievement: Optional[dict], levels: list[dict]) -> int:
    if _is_daily(achievement):
        if not _reset_today(user_achievement):
            return 0
        return user_achievement.get("dailyProgress", 0)

    if achievement.get("branchId"):
        scoped = [ul for ul in levels if ul["branchId"] == achievement["branchId"]]
    elif achievement.get("category"):
        scoped = [ul for ul in levels if ul.get("category") == achievement["category"]]
    else:
        scoped = levels
    return sum(len(ul.get("completedLevels", [])) for ul in scoped)


async def achievements_with_progress(db: AsyncIOMotorDatabase, user_id, query: dict) -> list[dict]:
    achievements = await db.achievements.find(query).sort(
        [("category", ASCENDING), ("createdAt", ASCENDING)]
    ).to_list(length=None)
    user_achievements = await db.user_achievements.find({"userId": user_id}).to_list(length=None)
    by_achievement = {str(ua["achievementId"]): ua for ua in user_achievements}
    levels = await db.user_levels.find({"userId": user_id}).to_list(length=None)

    branch_ids = list({a["branchId"] for a in achievements if a.get("branchId")})
    branches = {str(b["_id"]): b for b in await db.branches.find({"_id": {"$in": branch_ids}}).to_list(length=None)}

    results = []
    for achievement in achievements:
        ua = by_achievement.get(str(achievement["_id"]))
        branch = branches.get(str(achievement.get("branchId")))
        total = _required(achievement)
        current = _current_progress(achievement, ua, levels)
        if _is_daily(achievement):
            is_completed = bool(ua and ua.get("isCompleted")) and _reset_today(ua)
        else:
            is_completed = bool(ua and ua.get("isCompleted")) or current >= total
        results.append({
            "_id": achievement["_id"],
            "name": achievement.get("name"),
            "description": achievement.get("description"),
            "icon": achievement.get("icon"),
            "category": achievement.get("category"),
            "type": achievement.get("type", AchievementType.LEVEL_COMPLETION.value),
            "branch": {"_id": branch["_id"], "name": branch["name"], "icon": branch.get("icon")} if branch else UNKNOWN_BRANCH,
            "progress": {
                "current": current,
                "total": total,
                "percentage": min(round(current / total * 100), 100) if total else 0,
            },
            "isCompleted": is_completed,
            "completedAt": ua.get("completedAt") if ua and is_completed else None,
            "pointsEarned": ua.get("pointsEarned", 0) if ua else 0,
        })
    return results


async def _get_achievement_or_404(db: AsyncIOMotorDatabase, achievement_id: str) -> dict:
    achievement = await db.achievements.find_one({"_id": to_object_id(achievement_id, "achievement")})
    if not achievement:
        raise HTTPException(status_code=404, detail="Achievement not found")
    return achievement


# ==================== USER ENDPOINTS ====================

@router.get("/")
async def my_achievements(user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    achievements = await achievements_with_progress(db, user["_id"], {"isActive": True})
    return success_response("User achievements retrieved successfully", achievements)


@router.get("/category/{category}")
async def achievements_by_category(
    category: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=INVALID_CATEGORY_MSG)
    achievements = await achievements_with_progress(db, user["_id"], {"isActive": True, "category": category})
    return success_response(f"{category} achievements retrieved successfully", achievements)


@router.get("/completed")
async def completed_achievements(user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    achievements = await achievements_with_progress(db, user["_id"], {"isActive": True})
    completed = [a for a in achievements if a["isCompleted"]]
    return success_response("Completed achievements retrieved successfully", completed)


@router.get("/stats")
async def achievement_stats(user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    total = await db.achievements.count_documents({"isActive": True})
    records = await db.user_achievements.find({"userId": user["_id"]}).to_list(length=None)
    daily_ids = {
        a["_id"] for a in await db.achievements.find({"type": AchievementType.DAILY.value}, {"_id": 1}).to_list(length=None)
    }
    # a daily goal completed on an earlier day no longer counts as completed
    completed = [
        ua for ua in records
        if ua.get("isCompleted") and (ua["achievementId"] not in daily_ids or _reset_today(ua))
    ]
    return success_response("Achievement stats retrieved successfully", {
        "totalAchievements": total,
        "completedAchievements": len(completed),
        "totalPointsEarned": sum(ua.get("pointsEarned", 0) for ua in records),
        "completionPercentage": round(len(completed) / total * 100) if total else 0,
    })


@router.get("/branch/{branch_id}/badge")
async def branch_badge(
    branch_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    branch = await get_branch_or_404(db, branch_id)
    user_level = await db.user_levels.find_one({"userId": user["_id"], "branchId": branch["_id"]})
    achievement = await db.achievements.find_one({
        "branchId": branch["_id"],
        "isActive": True,
        "type": {"$ne": AchievementType.DAILY.value},
        "requirements.levelsCompleted": MAX_LEVELS,
    })
    user_achievement = None
    if achievement:
        user_achievement = await db.user_achievements.find_one({"userId": user["_id"], "achievementId": achievement["_id"]})

    completed = len(user_level.get("completedLevels", [])) if user_level else 0
    earned = completed >= MAX_LEVELS
    return success_response("Branch badge progress retrieved successfully", {
        "branch": branch_brief(branch),
        "badge": {
            "name": achievement["name"] if achievement else f"{branch['name']} Pro Badge",
            "description": achievement["description"] if achievement else f"Complete all levels in {branch['name']} to earn this badge",
            "icon": achievement.get("icon") if achievement else "🏅",
            "isEarned": earned,
            "earnedAt": user_achievement.get("completedAt") if user_achievement else None,
        },
        "progress": {
            "completedLevels": completed,
            "totalLevels": MAX_LEVELS,
            "percentage": round(completed / MAX_LEVELS * 100),
            "isCompleted": earned,
        },
    })


# ==================== ADMIN ENDPOINTS ====================

@router.get("/admin/all")
async def admin_list_achievements(
    category: Optional[str] = None,
    isActive: Optional[bool] = None,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query = {}
    if category:
        query["category"] = category
    if isActive is not None:
        query["isActive"] = isActive
    achievements = await db.achievements.find(query).sort("createdAt", ASCENDING).to_list(length=None)
    return success_response("Achievements retrieved successfully", achievements)


@router.get("/admin/{achievement_id}")
async def admin_get_achievement(
    achievement_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    achievement = await _get_achievement_or_404(db, achievement_id)
    return success_response("Achievement retrieved successfully", achievement)


@router.post("/admin/create")
async def admin_create_achievement(
    data: AchievementCreate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if await db.achievements.find_one({"name": data.name}):
        raise HTTPException(status_code=400, detail="Achievement with this name already exists")

    branch = await get_branch_or_404(db, data.branchId) if data.branchId else None
    requirements = data.requirements.model_dump(exclude_none=True)
    if data.type == AchievementType.DAILY and not requirements.get("questionsAnswered"):
        raise HTTPException(status_code=400, detail="Daily achievements require requirements.questionsAnswered")
    if data.type == AchievementType.LEVEL_COMPLETION and not requirements.get("levelsCompleted"):
        raise HTTPException(status_code=400, detail="Level achievements require requirements.levelsCompleted")

    now = datetime.utcnow()
    achievement = {
        "name": data.name,
        "description": data.description,
        "icon": data.icon,
        "branchId": branch["_id"] if branch else None,
        "category": data.category.value if data.category else (branch.get("category") if branch else None),
        "type": data.type.value,
        "requirements": requirements,
        "pointsReward": data.pointsReward,
        "isActive": True,
        "createdBy": admin["_id"],
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = await db.achievements.insert_one(achievement)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Achievement with this name already exists")
    achievement["_id"] = result.inserted_id
    logger.info(f"✅ Achievement created: {data.name}")
    return success_response("Achievement created successfully", achievement, 201)


@router.put("/admin/{achievement_id}")
async def admin_update_achievement(
    achievement_id: str,
    data: AchievementUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    achievement = await _get_achievement_or_404(db, achievement_id)
    updates = data.model_dump(exclude_none=True)
    if "name" in updates and updates["name"] != achievement["name"]:
        if await db.achievements.find_one({"name": updates["name"], "_id": {"$ne": achievement["_id"]}}):
            raise HTTPException(status_code=400, detail="Achievement with this name already exists")
    if "requirements" in updates:
        updates["requirements"] = {**achievement.get("requirements", {}), **updates["requirements"]}

    updates["updatedAt"] = datetime.utcnow()
    await db.achievements.update_one({"_id": achievement["_id"]}, {"$set": updates})
    achievement.update(updates)
    return success_response("Achievement updated successfully", achievement)


@router.delete("/admin/{achievement_id}")
async def admin_delete_achievement(
    achievement_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    achievement = await _get_achievement_or_404(db, achievement_id)
    await db.achievements.update_one(
        {"_id": achievement["_id"]},
        {"$set": {"isActive": False, "updatedAt": datetime.utcnow()}}
    )
    return success_response("Achievement deleted successfully")
