"""
Learning progression
Single owner of answer recording, level completion and achievement progress.

A level is complete once every active question in it (1 to 10 questions)
has an answer from the user. Completed levels are recorded once, and the
user's currentLevel is always the lowest level not yet completed (capped at 10).
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from gnosis.core.config import MAX_LEVELS
from gnosis.learning.database import completed_level_numbers, get_or_create_user_level, level_questions
from gnosis.learning.models import AchievementType

logger = logging.getLogger(__name__)

BRANCH_LEVEL_THRESHOLDS = [(6, 3), (3, 2), (1, 1)]
PACKETS_PER_LEVEL = 3


# ==================== LEVEL STATE ====================

def lowest_uncompleted_level(completed: list[int]) -> int:
    done = set(completed)
    for level in range(1, MAX_LEVELS + 1):
        if level not in done:
            return level
    return MAX_LEVELS


def level_percentage(answered: int, total: int) -> int:
    return round(answered / total * 100) if total else 0


async def level_answer_stats(db: AsyncIOMotorDatabase, user_id, questions: list[dict]) -> dict:
    ids = [q["_id"] for q in questions]
    answers = await db.user_answers.find({"userId": user_id, "questionId": {"$in": ids}}).to_list(length=None)
    return {
        "answered": len(answers),
        "correct": sum(1 for a in answers if a.get("isCorrect")),
        "total": len(questions),
        "answers": answers,
    }


async def refresh_user_level(db: AsyncIOMotorDatabase, user_id, branch: dict, level: int) -> dict:
    """
    Recompute a user's branch progress after an answer in `level`.
    Returns {"userLevel", "levelCompleted", "levelProgress"}.
    """
    user_level = await get_or_create_user_level(db, user_id, branch)
    questions = await level_questions(db, branch["_id"], level)
    stats = await level_answer_stats(db, user_id, questions)

    completed_entries = list(user_level.get("completedLevels", []))
    completed = completed_level_numbers(user_level)
    level_completed = False
    now = datetime.utcnow()

    if stats["total"] > 0 and stats["answered"] >= stats["total"] and level not in completed:
        completed_entries.append({
            "level": level,
            "completedAt": now,
            "questionsAnswered": stats["answered"],
            "correctAnswers": stats["correct"],
            "totalQuestions": stats["total"],
        })
        completed.append(level)
        level_completed = True

    branch_answers = await db.user_answers.find({"userId": user_id, "branchId": branch["_id"]}).to_list(length=None)
    update = {
        "completedLevels": completed_entries,
        "currentLevel": lowest_uncompleted_level(completed),
        "totalQuestionsAnswered": len(branch_answers),
        "totalCorrectAnswers": sum(1 for a in branch_answers if a.get("isCorrect")),
        "totalPoints": sum(a.get("pointsEarned", 0) for a in branch_answers),
        "lastPlayedAt": now,
    }
    await db.user_levels.update_one({"_id": user_level["_id"]}, {"$set": update})
    user_level.update(update)

    if level_completed:
        logger.info(f"✅ User {user_id} completed level {level} of branch {branch.get('name')}")

    return {
        "userLevel": user_level,
        "levelCompleted": level_completed,
        "levelProgress": {
            "answered": stats["answered"],
            "total": stats["total"],
            "percentage": level_percentage(stats["answered"], stats["total"]),
        },
    }


# ==================== ANSWERS ====================

async def record_answer(
    db: AsyncIOMotorDatabase,
    user_id,
    question: dict,
    selected_index: int,
    time_spent: int = 0,
    points: Optional[int] = None,
) -> dict:
    """
    Store (or replace) the user's answer to a question and advance progression.
    Only a first answer feeds achievement progress.
    """
    options = question.get("options", [])
    if selected_index >= len(options):
        raise HTTPException(status_code=400, detail="Selected option index is out of range")

    branch = await db.branches.find_one({"_id": question["branchId"]})
    if not branch:
        raise HTTPException(status_code=404, detail="Branch not found")

    level = question.get("level", 1)
    user_level = await get_or_create_user_level(db, user_id, branch)
    if level > user_level.get("currentLevel", 1) and level not in completed_level_numbers(user_level):
        raise HTTPException(status_code=403, detail="Level not unlocked yet")

    is_correct = selected_index == question.get("correctAnswerIndex")
    award = question.get("points", 10) if points is None else points
    now = datetime.utcnow()
    answer_fields = {
        "selectedOptionIndex": selected_index,
        "isCorrect": is_correct,
        "pointsEarned": award if is_correct else 0,
        "timeSpent": time_spent,
        "answeredAt": now,
    }

    key = {"userId": user_id, "questionId": question["_id"]}
    existing = await db.user_answers.find_one(key)
    is_new = existing is None
    if is_new:
        answer = {**key, "branchId": question["branchId"], "level": level, **answer_fields}
        try:
            result = await db.user_answers.insert_one(answer)
            answer["_id"] = result.inserted_id
        except DuplicateKeyError:
            is_new = False
            await db.user_answers.update_one(key, {"$set": answer_fields})
            answer = await db.user_answers.find_one(key)
    else:
        await db.user_answers.update_one({"_id": existing["_id"]}, {"$set": answer_fields})
        answer = {**existing, **answer_fields}

    progress = await refresh_user_level(db, user_id, branch, level)

    unlocked = []
    if is_new:
        unlocked += await check_level_achievements(db, user_id, branch)
        unlocked += await check_daily_achievements(db, user_id, branch, is_correct)

    return {
        "answer": answer,
        "isCorrect": is_correct,
        "pointsEarned": answer_fields["pointsEarned"],
        "correctAnswerIndex": question.get("correctAnswerIndex"),
        "explanation": question.get("explanation"),
        "isNewAnswer": is_new,
        "achievementsUnlocked": unlocked,
        **progress,
    }


# ==================== ACHIEVEMENTS ====================

def _scope_query(branch: dict, achievement_type: str) -> dict:
    type_filter = {"type": AchievementType.DAILY.value} if achievement_type == AchievementType.DAILY.value \
        else {"type": {"$ne": AchievementType.DAILY.value}}
    return {
        "isActive": True,
        **type_filter,
        "$or": [
            {"branchId": branch["_id"]},
            {"branchId": None, "category": branch.get("category")},
            {"branchId": None, "category": None},
        ],
    }


async def _get_or_create_user_achievement(db: AsyncIOMotorDatabase, user_id, achievement: dict, total_required: int) -> dict:
    now = datetime.utcnow()
    await db.user_achievements.update_one(
        {"userId": user_id, "achievementId": achievement["_id"]},
        {"$setOnInsert": {
            "userId": user_id,
            "achievementId": achievement["_id"],
            "branchId": achievement.get("branchId"),
            "levelsCompleted": 0,
            "questionsAnswered": 0,
            "correctAnswers": 0,
            "dailyProgress": 0,
            "totalRequired": total_required,
            "lastResetDate": now,
            "isCompleted": False,
            "completedAt": None,
            "pointsEarned": 0,
            "createdAt": now,
        }},
        upsert=True
    )
    return await db.user_achievements.find_one({"userId": user_id, "achievementId": achievement["_id"]})


async def completed_levels_for_scope(db: AsyncIOMotorDatabase, user_id, achievement: dict, branch: dict) -> int:
    """Levels completed in the achievement's branch, or across its category when it has none"""
    if achievement.get("branchId"):
        query = {"userId": user_id, "branchId": achievement["branchId"]}
    elif achievement.get("category"):
        query = {"userId": user_id, "category": achievement["category"]}
    else:
        query = {"userId": user_id}
    levels = await db.user_levels.find(query).to_list(length=None)
    return sum(len(ul.get("completedLevels", [])) for ul in levels)


async def check_level_achievements(db: AsyncIOMotorDatabase, user_id, branch: dict) -> list[dict]:
    unlocked = []
    achievements = await db.achievements.find(_scope_query(branch, AchievementType.LEVEL_COMPLETION.value)).to_list(length=None)
    for achievement in achievements:
        required = (achievement.get("requirements") or {}).get("levelsCompleted") or 1
        ua = await _get_or_create_user_achievement(db, user_id, achievement, required)
        if ua.get("isCompleted"):
            continue

        levels_completed = await completed_levels_for_scope(db, user_id, achievement, branch)
        update = {"levelsCompleted": levels_completed, "totalRequired": required, "updatedAt": datetime.utcnow()}
        if levels_completed >= required:
            update.update({
                "isCompleted": True,
                "completedAt": datetime.utcnow(),
                "pointsEarned": achievement.get("pointsReward", 100),
            })
            unlocked.append(achievement)
        await db.user_achievements.update_one({"_id": ua["_id"]}, {"$set": update})
    return unlocked


async def check_daily_achievements(db: AsyncIOMotorDatabase, user_id, branch: dict, is_correct: bool) -> list[dict]:
    """Daily goals count answers per calendar day (UTC) and reset on the first answer of a new day"""
    unlocked = []
    now = datetime.utcnow()
    achievements = await db.achievements.find(_scope_query(branch, AchievementType.DAILY.value)).to_list(length=None)
    for achievement in achievements:
        required = (achievement.get("requirements") or {}).get("questionsAnswered") or 1
        ua = await _get_or_create_user_achievement(db, user_id, achievement, required)

        last_reset = ua.get("lastResetDate")
        if not last_reset or last_reset.date() != now.date():
            ua.update({"dailyProgress": 0, "isCompleted": False, "completedAt": None, "lastResetDate": now})
        elif ua.get("isCompleted"):
            continue

        update = {
            "questionsAnswered": ua.get("questionsAnswered", 0) + 1,
            "correctAnswers": ua.get("correctAnswers", 0) + (1 if is_correct else 0),
            "dailyProgress": ua.get("dailyProgress", 0) + 1,
            "lastResetDate": ua["lastResetDate"],
            "totalRequired": required,
            "isCompleted": False,
            "completedAt": None,
            "updatedAt": now,
        }
        if update["dailyProgress"] >= required:
            update.update({
                "isCompleted": True,
                "completedAt": now,
                "pointsEarned": ua.get("pointsEarned", 0) + achievement.get("pointsReward", 100),
            })
            unlocked.append(achievement)
        await db.user_achievements.update_one({"_id": ua["_id"]}, {"$set": update})
    return unlocked


# ==================== OVERALL LEVEL ====================

def overall_level(completed_branches: int, completed_packets: int) -> int:
    """
    1 full branch → 1, 3 → 2, 6 → 3; past level 3 every 3 completed
    question packets add one more level.
    """
    level = 0
    for branches_needed, value in BRANCH_LEVEL_THRESHOLDS:
        if completed_branches >= branches_needed:
            level = value
            break
    if level >= 3:
        level += completed_packets // PACKETS_PER_LEVEL
    return level


def next_level_requirement(level: int, completed_branches: int, completed_packets: int) -> dict:
    if level < 3:
        needed = {0: 1, 1: 3, 2: 6}[level]
        return {
            "type": "branches",
            "required": needed,
            "current": completed_branches,
            "remaining": needed - completed_branches,
        }
    needed = PACKETS_PER_LEVEL * (completed_packets // PACKETS_PER_LEVEL + 1)
    return {
        "type": "question_packets",
        "required": needed,
        "current": completed_packets,
        "remaining": needed - completed_packets,
    }


async def user_overall_level(db: AsyncIOMotorDatabase, user_id) -> dict:
    levels = await db.user_levels.find({"userId": user_id}).to_list(length=None)
    completed_branches = [ul for ul in levels if len(ul.get("completedLevels", [])) >= MAX_LEVELS]
    completed_packets = await db.question_packet_answers.count_documents({"userId": user_id, "isCompleted": True})
    level = overall_level(len(completed_branches), completed_packets)
    return {
        "overallLevel": level,
        "branchCompletions": len(completed_branches),
        "questionPacketCompletions": completed_packets,
        "completedBranchIds": [ul["branchId"] for ul in completed_branches],
        "nextLevelRequirement": next_level_requirement(level, len(completed_branches), completed_packets),
    }
