"""
Question Router
✅ Per-branch, per-level multiple-choice questions (max 10 per level)
✅ Bulk creation with per-item errors
✅ Answer submission through the progression service
✅ User answer history, stats and level progress
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from gnosis.core.config import MAX_LEVELS, MAX_QUESTIONS_PER_LEVEL
from gnosis.core.database import get_db, to_object_id
from gnosis.core.dependencies import get_current_user, require_active_subscription, require_admin
from gnosis.core.responses import error_response, success_response
from gnosis.core.uploads import destroy_image, upload_image
from gnosis.learning import progression
from gnosis.learning.database import (
    branch_brief,
    build_options,
    get_branch_or_404,
    get_or_create_user_level,
    get_question_or_404,
    next_question_number,
    validate_options,
    validate_question_fields,
)
from gnosis.learning.models import (
    AnswerSubmit,
    BulkQuestionsRequest,
    CATEGORIES,
    INVALID_CATEGORY_MSG,
    QuestionCreate,
    QuestionUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Questions"])

QUESTION_SORT = [("level", ASCENDING), ("questionNumber", ASCENDING)]


# ==================== HELPER FUNCTIONS ====================

def parse_level(level) -> int:
    try:
        value = int(level)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid level. Must be between 1 and 10")
    if not 1 <= value <= MAX_LEVELS:
        raise HTTPException(status_code=400, detail="Invalid level. Must be between 1 and 10")
    return value


def user_answer_summary(answer: Optional[dict]) -> Optional[dict]:
    if not answer:
        return None
    return {
        "selectedOptionIndex": answer.get("selectedOptionIndex"),
        "isCorrect": answer.get("isCorrect"),
        "pointsEarned": answer.get("pointsEarned", 0),
        "timeSpent": answer.get("timeSpent", 0),
        "answeredAt": answer.get("answeredAt"),
    }


async def insert_question(db: AsyncIOMotorDatabase, data: dict, creator_id) -> dict:
    """
    Validate and store one question.
    Raises HTTPException(400/404) describing the first problem found.
    """
    error = validate_question_fields(data)
    if error:
        raise HTTPException(status_code=400, detail=error)

    branch = await get_branch_or_404(db, data["branchId"])
    level = int(data["level"])

    active = await db.questions.count_documents({"branchId": branch["_id"], "level": level, "isActive": True})
    if active >= MAX_QUESTIONS_PER_LEVEL:
        raise HTTPException(
            status_code=400,
            detail="Maximum of 10 active questions per level reached for this branch and level"
        )

    number = await next_question_number(db, branch["_id"], level)
    if number is None:
        raise HTTPException(
            status_code=400,
            detail="All question number slots (1-10) are occupied for this branch and level. "
                   "Permanently remove an inactive question to free a slot."
        )

    correct_index = int(data["correctAnswerIndex"])
    now = datetime.utcnow()
    question = {
        "branchId": branch["_id"],
        "category": branch.get("category"),
        "level": level,
        "questionNumber": number,
        "questionText": data["questionText"].strip(),
        "equation": data.get("equation"),
        "image": data.get("image"),
        "options": build_options(data["options"], correct_index),
        "correctAnswerIndex": correct_index,
        "explanation": data.get("explanation"),
        "difficulty": data.get("difficulty") or "medium",
        "points": int(data.get("points") or 10),
        "isActive": True,
        "createdBy": creator_id,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = await db.questions.insert_one(question)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="A question with this number already exists for this branch and level")
    question["_id"] = result.inserted_id
    return question


# ==================== READ ENDPOINTS ====================

@router.get("/")
async def list_questions(
    branchId: Optional[str] = None,
    category: Optional[str] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query = {"isActive": True}
    if branchId:
        query["branchId"] = to_object_id(branchId, "branch")
    if category:
        query["category"] = category
    questions = await db.questions.find(query).sort(QUESTION_SORT).to_list(length=None)
    return success_response("Questions retrieved successfully", {"questions": questions, "count": len(questions)})


@router.get("/count")
async def question_count(
    branchId: Optional[str] = None,
    level: Optional[str] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not branchId or not level:
        raise HTTPException(status_code=400, detail="Branch ID and level are required")
    level_num = parse_level(level)
    branch_oid = to_object_id(branchId, "branch")

    count = await db.questions.count_documents({"branchId": branch_oid, "level": level_num, "isActive": True})
    return success_response("Question count retrieved successfully", {
        "branchId": branchId,
        "level": level_num,
        "count": count,
        "maxQuestions": MAX_QUESTIONS_PER_LEVEL,
        "remaining": max(MAX_QUESTIONS_PER_LEVEL - count, 0),
    })


@router.get("/filtered")
async def filtered_questions(
    branchId: Optional[str] = None,
    level: Optional[str] = None,
    user: dict = Depends(require_active_subscription),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query = {"isActive": True}
    if branchId:
        branch = await get_branch_or_404(db, branchId)
        query["branchId"] = branch["_id"]
    if level:
        query["level"] = parse_level(level)

    questions = await db.questions.find(query).sort(
        [("category", ASCENDING), ("branchId", ASCENDING), ("level", ASCENDING), ("questionNumber", ASCENDING)]
    ).to_list(length=None)

    answers = await db.user_answers.find(
        {"userId": user["_id"], "questionId": {"$in": [q["_id"] for q in questions]}}
    ).to_list(length=None)
    by_question = {str(a["questionId"]): a for a in answers}
    for question in questions:
        question["userAnswer"] = user_answer_summary(by_question.get(str(question["_id"])))

    return success_response("Questions retrieved successfully", {
        "filters": {"branchId": branchId or "all", "level": level or "all"},
        "totalQuestions": len(questions),
        "questions": questions,
    })


@router.get("/category/{category}")
async def questions_by_category(category: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    if category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=INVALID_CATEGORY_MSG)

    branches = await db.branches.find({"category": category, "isActive": True}).to_list(length=None)
    names = {str(b["_id"]): b["name"] for b in branches}
    questions = await db.questions.find(
        {"branchId": {"$in": [b["_id"] for b in branches]}, "isActive": True}
    ).sort(QUESTION_SORT).to_list(length=None)

    grouped: dict[str, list] = {}
    for question in questions:
        grouped.setdefault(names.get(str(question["branchId"]), "Unknown"), []).append(question)

    return success_response(f"{category} questions retrieved successfully", {
        "category": category,
        "groupedQuestions": grouped,
        "totalQuestions": len(questions),
    })


@router.get("/branch/{branch_id}")
async def questions_by_branch(branch_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    branch = await get_branch_or_404(db, branch_id)
    questions = await db.questions.find({"branchId": branch["_id"], "isActive": True}).sort(QUESTION_SORT).to_list(length=None)
    return success_response("Branch questions retrieved successfully", {
        "branch": {"_id": branch["_id"], "name": branch["name"], "category": branch["category"]},
        "questions": questions,
    })


# ==================== USER ANSWER ENDPOINTS ====================

@router.get("/user/answers")
async def my_answers(
    branchId: Optional[str] = None,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query = {"userId": user["_id"]}
    if branchId:
        query["branchId"] = to_object_id(branchId, "branch")
    answers = await db.user_answers.find(query).sort("answeredAt", DESCENDING).to_list(length=None)
    return success_response("User answers retrieved successfully", {"answers": answers, "count": len(answers)})


@router.get("/user/stats")
async def my_stats(
    branchId: Optional[str] = None,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query = {"userId": user["_id"]}
    if branchId:
        query["branchId"] = to_object_id(branchId, "branch")
    answers = await db.user_answers.find(query).to_list(length=None)

    total = len(answers)
    correct = sum(1 for a in answers if a.get("isCorrect"))
    stats = {
        "totalQuestions": total,
        "correctAnswers": correct,
        "totalPoints": sum(a.get("pointsEarned", 0) for a in answers),
        "averageTimeSpent": round(sum(a.get("timeSpent", 0) for a in answers) / total, 2) if total else 0,
        "accuracy": round(correct / total * 100) if total else 0,
    }
    return success_response("User stats retrieved successfully", {"stats": stats})


@router.get("/user/level-progress/{branch_id}")
async def my_level_progress(
    branch_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    branch = await get_branch_or_404(db, branch_id)
    user_level = await get_or_create_user_level(db, user["_id"], branch)
    current = user_level.get("currentLevel", 1)

    questions = await db.questions.find(
        {"branchId": branch["_id"], "level": current, "isActive": True}
    ).to_list(length=None)
    stats = await progression.level_answer_stats(db, user["_id"], questions)
    completed = len(user_level.get("completedLevels", []))
    current_done = current in [entry["level"] for entry in user_level.get("completedLevels", [])]

    return success_response("User level progress retrieved successfully", {
        "branchId": branch["_id"],
        "category": branch.get("category"),
        "currentLevel": current,
        "completedLevels": completed,
        "totalLevels": MAX_LEVELS,
        "currentLevelProgress": {
            "questionsAnswered": stats["answered"],
            "correctAnswers": stats["correct"],
            "totalQuestions": stats["total"],
            "isCompleted": current_done,
        },
        "overallProgress": {
            "totalQuestionsAnswered": user_level.get("totalQuestionsAnswered", 0),
            "totalCorrectAnswers": user_level.get("totalCorrectAnswers", 0),
            "levelsCompleted": completed,
            "totalLevels": MAX_LEVELS,
        },
        "canAdvanceToNextLevel": current_done and current < MAX_LEVELS,
    })


# ==================== SINGLE QUESTION ====================

@router.get("/{question_id}")
async def get_question(question_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    question = await get_question_or_404(db, question_id)
    branch = await db.branches.find_one({"_id": question["branchId"]})
    question["branch"] = branch_brief(branch)
    return success_response("Question retrieved successfully", {"question": question})


@router.post("/{question_id}/answer")
async def submit_answer(
    question_id: str,
    data: AnswerSubmit,
    user: dict = Depends(require_active_subscription),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    question = await get_question_or_404(db, question_id, active_only=True)
    result = await progression.record_answer(db, user["_id"], question, data.selectedOptionIndex, data.timeSpent)
    message = "Correct answer!" if result["isCorrect"] else "Incorrect answer"
    return success_response(message, result)


# ==================== ADMIN ENDPOINTS ====================

@router.post("/")
async def create_question(
    data: QuestionCreate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    question = await insert_question(db, data.model_dump(mode="json"), admin["_id"])
    logger.info(f"✅ Question {question['questionNumber']} created for level {question['level']}")
    return success_response("Question created successfully", {"question": question}, 201)


@router.post("/bulk")
async def create_bulk_questions(
    data: BulkQuestionsRequest,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    created, errors = [], []
    for i, item in enumerate(data.questions, start=1):
        try:
            created.append(await insert_question(db, item, admin["_id"]))
        except HTTPException as e:
            errors.append(f"Question {i}: {e.detail}")

    payload = {
        "created": len(created),
        "failed": len(errors),
        "total": len(data.questions),
        "questions": created,
    }
    if errors:
        payload["errors"] = errors

    if not created:
        return error_response("No questions were created", 400, data=payload)
    message = f"{len(created)} questions created successfully"
    if errors:
        message += f", {len(errors)} failed"
    return success_response(message, payload, 201)


@router.post("/{question_id}/image")
async def upload_question_image(
    question_id: str,
    image: UploadFile = File(...),
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    question = await get_question_or_404(db, question_id)
    uploaded = await upload_image(image, folder=f"gnosis/questions/{question['branchId']}")
    if question.get("image"):
        await destroy_image(question["image"])
    await db.questions.update_one(
        {"_id": question["_id"]},
        {"$set": {"image": uploaded["url"], "updatedAt": datetime.utcnow()}}
    )
    return success_response("Question image uploaded successfully", {"image": uploaded["url"]})


@router.put("/{question_id}")
async def update_question(
    question_id: str,
    data: QuestionUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    question = await get_question_or_404(db, question_id)
    updates = data.model_dump(exclude_none=True, mode="json")

    raw_options = updates.pop("options", None)
    correct_index = updates.get("correctAnswerIndex", question.get("correctAnswerIndex"))
    if raw_options is not None or "correctAnswerIndex" in updates:
        options = raw_options if raw_options is not None else question.get("options", [])
        options_error = validate_options(options)
        if options_error:
            raise HTTPException(status_code=400, detail=options_error)
        if not 0 <= correct_index < len(options):
            raise HTTPException(status_code=400, detail="Correct answer index must be within the options range")
        updates["options"] = build_options(options, correct_index)

    if updates.get("isActive") and not question.get("isActive", True):
        active = await db.questions.count_documents(
            {"branchId": question["branchId"], "level": question["level"], "isActive": True}
        )
        if active >= MAX_QUESTIONS_PER_LEVEL:
            raise HTTPException(
                status_code=400,
                detail="Maximum of 10 active questions per level reached for this branch and level"
            )

    updates["updatedAt"] = datetime.utcnow()
    await db.questions.update_one({"_id": question["_id"]}, {"$set": updates})
    question.update(updates)
    return success_response("Question updated successfully", {"question": question})


@router.delete("/{question_id}")
async def delete_question(
    question_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    question = await get_question_or_404(db, question_id)
    await db.questions.update_one(
        {"_id": question["_id"]},
        {"$set": {"isActive": False, "updatedAt": datetime.utcnow()}}
    )
    return success_response("Question deleted successfully")
