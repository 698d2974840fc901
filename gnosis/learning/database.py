from datetime import datetime
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from gnosis.core.config import MAX_LEVELS, MAX_QUESTIONS_PER_LEVEL
from gnosis.core.database import to_object_id

# ==================== BRANCH HELPERS ====================


async def get_branch_or_404(db: AsyncIOMotorDatabase, branch_id) -> dict:
    branch = await db.branches.find_one({"_id": to_object_id(branch_id, "branch")})
    if not branch:
        raise HTTPException(status_code=404, detail="Branch not found")
    return branch


def branch_brief(branch: Optional[dict]) -> Optional[dict]:
    if not branch:
        return None
    return {
        "_id": branch["_id"],
        "name": branch.get("name"),
        "category": branch.get("category"),
        "icon": branch.get("icon"),
    }


def default_progress() -> dict:
    return {
        "currentLevel": 1,
        "totalLevels": MAX_LEVELS,
        "completedLevels": 0,
        "completedLevelsArray": [],
        "isUnlocked": True,
        "progressPercentage": 0,
    }


def completed_level_numbers(user_level: Optional[dict]) -> list[int]:
    if not user_level:
        return []
    return sorted(entry["level"] for entry in user_level.get("completedLevels", []))


def progress_from_user_level(user_level: Optional[dict]) -> dict:
    if not user_level:
        return default_progress()
    completed = completed_level_numbers(user_level)
    return {
        "currentLevel": user_level.get("currentLevel", 1),
        "totalLevels": MAX_LEVELS,
        "completedLevels": len(completed),
        "completedLevelsArray": completed,
        "isUnlocked": user_level.get("isUnlocked", True),
        "progressPercentage": round(len(completed) / MAX_LEVELS * 100),
    }


# ==================== QUESTION HELPERS ====================


async def get_question_or_404(db: AsyncIOMotorDatabase, question_id, active_only: bool = False) -> dict:
    query = {"_id": to_object_id(question_id, "question")}
    if active_only:
        query["isActive"] = True
    question = await db.questions.find_one(query)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    return question


async def level_questions(db: AsyncIOMotorDatabase, branch_id: ObjectId, level: int) -> list[dict]:
    cursor = db.questions.find(
        {"branchId": branch_id, "level": level, "isActive": True}
    ).sort("questionNumber", ASCENDING).limit(MAX_QUESTIONS_PER_LEVEL)
    return await cursor.to_list(length=MAX_QUESTIONS_PER_LEVEL)


async def next_question_number(db: AsyncIOMotorDatabase, branch_id: ObjectId, level: int) -> Optional[int]:
    """First free questionNumber slot (1-10) for a branch level, counting soft-deleted questions"""
    cursor = db.questions.find({"branchId": branch_id, "level": level}, {"questionNumber": 1})
    taken = {q.get("questionNumber") for q in await cursor.to_list(length=None)}
    for number in range(1, MAX_QUESTIONS_PER_LEVEL + 1):
        if number not in taken:
            return number
    return None


def build_options(raw_options: list, correct_index: int) -> list[dict]:
    """Accept plain strings or {optionText} objects; mark the correct one"""
    options = []
    for i, option in enumerate(raw_options):
        text = option.get("optionText") if isinstance(option, dict) else option
        options.append({"optionText": str(text).strip(), "isCorrect": i == correct_index})
    return options


def validate_options(options) -> Optional[str]:
    """Options are plain strings or {optionText} objects, at least two, none blank"""
    if not isinstance(options, list) or len(options) < 2:
        return "At least 2 options are required"
    for option in options:
        text = option.get("optionText") if isinstance(option, dict) else option
        if not isinstance(text, str) or not text.strip():
            return "All options must be non-empty strings"
    return None


def validate_question_fields(data: dict) -> Optional[str]:
    """Error message for an invalid question payload, None when valid"""
    if not data.get("branchId") or data.get("level") is None or not data.get("questionText"):
        return "Branch ID, level, question text, options and correct answer index are required"
    if not isinstance(data["questionText"], str) or not data["questionText"].strip():
        return "Question text must be a non-empty string"

    options = data.get("options")
    options_error = validate_options(options)
    if options_error:
        return options_error

    points = data.get("points")
    if points is not None and (isinstance(points, bool) or not isinstance(points, (int, float))):
        return "Points must be a number"

    try:
        level = int(data["level"])
    except (TypeError, ValueError):
        return "Level must be a number between 1 and 10"
    if not 1 <= level <= MAX_LEVELS:
        return "Level must be between 1 and 10"

    index = data.get("correctAnswerIndex")
    if index is None:
        return "Correct answer index is required"
    try:
        index = int(index)
    except (TypeError, ValueError):
        return "Correct answer index must be a number"
    if not 0 <= index < len(options):
        return "Correct answer index must be within the options range"
    return None


def public_question(question: dict) -> dict:
    return {
        "_id": question["_id"],
        "branchId": question.get("branchId"),
        "level": question.get("level"),
        "questionNumber": question.get("questionNumber"),
        "questionText": question.get("questionText"),
        "equation": question.get("equation"),
        "image": question.get("image"),
        "options": question.get("options", []),
        "correctAnswerIndex": question.get("correctAnswerIndex"),
        "explanation": question.get("explanation"),
        "difficulty": question.get("difficulty"),
        "points": question.get("points", 10),
    }


# ==================== USER LEVEL HELPERS ====================


async def get_or_create_user_level(db: AsyncIOMotorDatabase, user_id, branch: dict) -> dict:
    now = datetime.utcnow()
    await db.user_levels.update_one(
        {"userId": user_id, "branchId": branch["_id"]},
        {"$setOnInsert": {
            "userId": user_id,
            "branchId": branch["_id"],
            "category": branch.get("category"),
            "currentLevel": 1,
            "completedLevels": [],
            "totalQuestionsAnswered": 0,
            "totalCorrectAnswers": 0,
            "totalPoints": 0,
            "isUnlocked": True,
            "createdAt": now,
            "lastPlayedAt": now,
        }},
        upsert=True
    )
    return await db.user_levels.find_one({"userId": user_id, "branchId": branch["_id"]})


async def user_levels_by_branch(db: AsyncIOMotorDatabase, user_id) -> dict:
    cursor = db.user_levels.find({"userId": user_id})
    return {str(ul["branchId"]): ul for ul in await cursor.to_list(length=None)}
