"""
Level Router
Per-user, per-branch level play: unlocked levels, level questions, answers
and the overall learner level.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from gnosis.core.config import MAX_LEVELS, POINTS_PER_CORRECT_ANSWER
from gnosis.core.database import get_db, to_object_id
from gnosis.core.dependencies import get_current_user
from gnosis.core.responses import success_response
from gnosis.learning import progression
from gnosis.learning.models import AnswerSubmit
from gnosis.learning.database import (
    branch_brief,
    completed_level_numbers,
    get_branch_or_404,
    get_or_create_user_level,
    get_question_or_404,
    level_questions,
)
from gnosis.learning.question_router import user_answer_summary

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Levels"])


def _level_question(question: dict, answer: Optional[dict]) -> dict:
    return {
        "_id": question["_id"],
        "questionNumber": question.get("questionNumber"),
        "level": question.get("level"),
        "questionText": question.get("questionText"),
        "equation": question.get("equation"),
        "image": question.get("image"),
        "options": question.get("options", []),
        "correctAnswerIndex": question.get("correctAnswerIndex"),
        "explanation": question.get("explanation"),
        "userAnswer": user_answer_summary(answer),
    }


# ==================== LEVEL ENDPOINTS ====================

@router.get("/")
async def my_levels(
    category: Optional[str] = None,
    branchId: Optional[str] = None,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query = {"userId": user["_id"]}
    if category:
        query["category"] = category
    if branchId:
        query["branchId"] = to_object_id(branchId, "branch")

    user_levels = await db.user_levels.find(query).sort("category", ASCENDING).to_list(length=None)
    formatted = []
    for ul in user_levels:
        branch = await db.branches.find_one({"_id": ul["branchId"]})
        completed = ul.get("completedLevels", [])
        formatted.append({
            "_id": ul["_id"],
            "branch": branch_brief(branch),
            "currentLevel": ul.get("currentLevel", 1),
            "completedLevels": completed,
            "totalQuestionsAnswered": ul.get("totalQuestionsAnswered", 0),
            "totalCorrectAnswers": ul.get("totalCorrectAnswers", 0),
            "totalPoints": ul.get("totalPoints", 0),
            "isUnlocked": ul.get("isUnlocked", True),
            "progressPercentage": round(len(completed) / MAX_LEVELS * 100),
        })
    formatted.sort(key=lambda item: (item["branch"] or {}).get("name") or "")
    return success_response("User levels retrieved successfully", formatted)


@router.get("/overall")
async def my_overall_level(
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    overall = await progression.user_overall_level(db, user["_id"])
    branches = await db.branches.find({"_id": {"$in": overall.pop("completedBranchIds")}}).to_list(length=None)
    overall["completedBranches"] = [branch_brief(b) for b in branches]
    return success_response("Overall level calculated successfully", overall)


@router.get("/branch/{branch_id}/progress")
async def branch_progress(
    branch_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    branch = await get_branch_or_404(db, branch_id)
    user_level = await db.user_levels.find_one({"userId": user["_id"], "branchId": branch["_id"]})
    if not user_level:
        return success_response("Branch progress retrieved successfully", {
            "branch": branch_brief(branch),
            "currentLevel": 1,
            "completedLevels": 0,
            "totalLevels": MAX_LEVELS,
            "progressPercentage": 0,
            "isUnlocked": True,
            "levelProgress": [],
        })

    completed = completed_level_numbers(user_level)
    level_progress = []
    for level in range(1, MAX_LEVELS + 1):
        questions = await level_questions(db, branch["_id"], level)
        stats = await progression.level_answer_stats(db, user["_id"], questions)
        level_progress.append({
            "level": level,
            "isCompleted": level in completed,
            "isUnlocked": level <= user_level.get("currentLevel", 1) or level in completed,
            "questionsAnswered": stats["answered"],
            "totalQuestions": stats["total"],
            "correctAnswers": stats["correct"],
            "progressPercentage": progression.level_percentage(stats["answered"], stats["total"]),
        })

    return success_response("Branch progress retrieved successfully", {
        "branch": branch_brief(branch),
        "currentLevel": user_level.get("currentLevel", 1),
        "completedLevels": len(completed),
        "totalLevels": MAX_LEVELS,
        "progressPercentage": round(len(completed) / MAX_LEVELS * 100),
        "isUnlocked": user_level.get("isUnlocked", True),
        "levelProgress": level_progress,
    })


@router.get("/branch/{branch_id}/detailed-progress")
async def branch_detailed_progress(
    branch_id: str,
    level: Optional[int] = None,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    branch = await get_branch_or_404(db, branch_id)
    user_level = await db.user_levels.find_one({"userId": user["_id"], "branchId": branch["_id"]})
    completed = completed_level_numbers(user_level)
    current = user_level.get("currentLevel", 1) if user_level else 1

    levels = [level] if level else list(range(1, MAX_LEVELS + 1))
    details, relevant = [], []
    for lvl in levels:
        questions = await level_questions(db, branch["_id"], lvl)
        stats = await progression.level_answer_stats(db, user["_id"], questions)
        by_question = {str(a["questionId"]): a for a in stats["answers"]}
        relevant.extend(stats["answers"])
        details.append({
            "level": lvl,
            "isCompleted": lvl in completed,
            "isUnlocked": lvl <= current or lvl in completed,
            "totalQuestions": stats["total"],
            "questionsAnswered": stats["answered"],
            "correctAnswers": stats["correct"],
            "questions": [_level_question(q, by_question.get(str(q["_id"]))) for q in questions],
        })

    answered = len(relevant)
    correct = sum(1 for a in relevant if a.get("isCorrect"))
    return success_response("User detailed progress retrieved successfully", {
        "branch": {**branch_brief(branch), "description": branch.get("description")},
        "userProgress": {
            "currentLevel": current,
            "completedLevels": len(completed),
            "totalLevels": MAX_LEVELS,
            "progressPercentage": round(len(completed) / MAX_LEVELS * 100),
            "isUnlocked": user_level.get("isUnlocked", True) if user_level else True,
        },
        "levelDetails": details,
        "overallStats": {
            "totalQuestionsAnswered": answered,
            "totalCorrectAnswers": correct,
            "accuracyPercentage": round(correct / answered * 100) if answered else 0,
            "averageTimeSpent": round(sum(a.get("timeSpent", 0) for a in relevant) / answered) if answered else 0,
            "totalPointsEarned": sum(a.get("pointsEarned", 0) for a in relevant),
        },
    })


@router.get("/branch/{branch_id}/level/{level}")
async def level_play(
    branch_id: str,
    level: int,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    branch = await get_branch_or_404(db, branch_id)
    user_level = await db.user_levels.find_one({"userId": user["_id"], "branchId": branch["_id"]})
    if not user_level:
        if level != 1:
            raise HTTPException(status_code=404, detail="User level not found. Please start from level 1")
        user_level = await get_or_create_user_level(db, user["_id"], branch)

    completed = completed_level_numbers(user_level)
    if level > user_level.get("currentLevel", 1) and level not in completed:
        raise HTTPException(status_code=403, detail="Level not unlocked yet. Complete previous levels first")

    questions = await level_questions(db, branch["_id"], level)
    if not questions:
        raise HTTPException(status_code=404, detail="No questions found for this level")

    stats = await progression.level_answer_stats(db, user["_id"], questions)
    by_question = {str(a["questionId"]): a for a in stats["answers"]}

    return success_response("Level questions retrieved successfully", {
        "branch": branch_brief(branch),
        "level": level,
        "totalQuestions": len(questions),
        "questions": [_level_question(q, by_question.get(str(q["_id"]))) for q in questions],
        "userProgress": {
            "currentLevel": user_level.get("currentLevel", 1),
            "completedLevels": len(completed),
            "totalLevels": MAX_LEVELS,
        },
    })


@router.post("/question/{question_id}/answer")
async def level_answer(
    question_id: str,
    data: AnswerSubmit,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    question = await get_question_or_404(db, question_id, active_only=True)
    result = await progression.record_answer(
        db, user["_id"], question, data.selectedOptionIndex, data.timeSpent, points=POINTS_PER_CORRECT_ANSWER
    )
    user_level = result["userLevel"]

    return success_response("Answer submitted successfully", {
        "isCorrect": result["isCorrect"],
        "correctAnswerIndex": result["correctAnswerIndex"],
        "explanation": result["explanation"],
        "pointsEarned": result["pointsEarned"],
        "levelCompleted": result["levelCompleted"],
        "currentLevel": user_level.get("currentLevel", 1),
        "completedLevels": len(user_level.get("completedLevels", [])),
        "levelProgress": result["levelProgress"],
        "achievementsUnlocked": result["achievementsUnlocked"],
    })
