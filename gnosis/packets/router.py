"""
Question Packet Router
Standalone practice packets: authoring (admin) and answering (students)
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from gnosis.core.database import get_db
from gnosis.core.dependencies import get_current_user, require_admin
from gnosis.core.responses import success_response
from gnosis.packets.database import (
    calculate_progress,
    get_packet_answer,
    get_packet_or_404,
    is_packet_completed,
    packet_document,
    score_answers,
    validate_packet_questions,
)
from gnosis.packets.models import (
    SUBJECT_ALIASES,
    AnswerQuestionRequest,
    PacketCreate,
    PacketStatus,
    PacketUpdate,
    SubmitAnswersRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Question Packets"])


# ==================== AUTHORING ====================

@router.post("/create")
async def create_packet(
    data: PacketCreate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    body = data.model_dump(mode="json")
    error = validate_packet_questions(body["questions"])
    if error:
        raise HTTPException(status_code=400, detail=error)

    packet = packet_document(body, admin["_id"], body["status"])
    result = await db.question_packets.insert_one(packet)
    packet["_id"] = result.inserted_id
    logger.info(f"✅ Question packet created: {packet.get('packetTitle')} ({packet['numberOfQuestions']} questions)")
    return success_response(
        "Question packet created successfully",
        {**packet, "progress": calculate_progress(packet["questions"])},
        201,
    )


@router.post("/save-draft")
async def save_draft(
    data: PacketCreate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    packet = packet_document(data.model_dump(mode="json"), admin["_id"], PacketStatus.DRAFT.value)
    result = await db.question_packets.insert_one(packet)
    packet["_id"] = result.inserted_id
    return success_response(
        "Question packet saved as draft",
        {**packet, "progress": calculate_progress(packet["questions"])},
        201,
    )


@router.put("/{packet_id}")
async def update_packet(
    packet_id: str,
    data: PacketUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    packet = await get_packet_or_404(db, packet_id)
    updates = data.model_dump(exclude_none=True, mode="json")
    if "questions" in updates:
        error = validate_packet_questions(updates["questions"])
        if error:
            raise HTTPException(status_code=400, detail=error)
        updates["numberOfQuestions"] = len(updates["questions"])

    updates["updatedAt"] = datetime.utcnow()
    await db.question_packets.update_one({"_id": packet["_id"]}, {"$set": updates})
    packet.update(updates)
    return success_response(
        "Question packet updated successfully",
        {**packet, "progress": calculate_progress(packet.get("questions"))},
    )


@router.delete("/{packet_id}")
async def delete_packet(
    packet_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    packet = await get_packet_or_404(db, packet_id)
    await db.question_packets.delete_one({"_id": packet["_id"]})
    await db.question_packet_answers.delete_many({"packetId": packet["_id"]})
    return success_response("Question packet deleted successfully")


# ==================== BROWSING ====================

@router.get("/")
async def list_packets(
    subject: Optional[str] = None,
    difficulty: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    minQuestions: Optional[int] = None,
    maxQuestions: Optional[int] = None,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query = {}
    if subject:
        query["subjectCategory"] = SUBJECT_ALIASES.get(subject, subject)
    if difficulty:
        query["difficultyLevel"] = difficulty
    if status:
        query["status"] = status
    if category:
        query["category"] = category
    if minQuestions is not None or maxQuestions is not None:
        query["numberOfQuestions"] = {}
        if minQuestions is not None:
            query["numberOfQuestions"]["$gte"] = minQuestions
        if maxQuestions is not None:
            query["numberOfQuestions"]["$lte"] = maxQuestions

    packets = await db.question_packets.find(query).sort("createdAt", DESCENDING).to_list(length=None)
    answers = await db.question_packet_answers.find({
        "userId": user["_id"],
        "packetId": {"$in": [p["_id"] for p in packets]},
    }).to_list(length=None)
    by_packet = {str(a["packetId"]): a.get("answers", []) for a in answers}

    return success_response("Question packets retrieved successfully", [
        {**p, "progress": calculate_progress(p.get("questions"), by_packet.get(str(p["_id"])))}
        for p in packets
    ])


@router.get("/{packet_id}")
async def get_packet(
    packet_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    packet = await get_packet_or_404(db, packet_id)
    record = await get_packet_answer(db, user["_id"], packet["_id"])
    return success_response("Question packet retrieved successfully", {
        **packet,
        "progress": calculate_progress(packet.get("questions"), record.get("answers") if record else None),
    })


# ==================== ANSWERING ====================

@router.post("/{packet_id}/submit-answers")
async def submit_answers(
    packet_id: str,
    data: SubmitAnswersRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    packet = await get_packet_or_404(db, packet_id)
    questions = packet.get("questions", [])
    if not data.answers or len(data.answers) != len(questions):
        raise HTTPException(status_code=400, detail=f"You must answer all {len(questions)} questions")

    scored = score_answers(questions, data.answers)
    now = datetime.utcnow()
    await db.question_packet_answers.update_one(
        {"userId": user["_id"], "packetId": packet["_id"]},
        {
            "$set": {
                "category": packet.get("subjectCategory"),
                "answers": scored["results"],
                "correctAnswers": scored["correctAnswers"],
                "totalQuestions": scored["totalQuestions"],
                "score": scored["score"],
                "isCompleted": scored["isCompleted"],
                "completedAt": now if scored["isCompleted"] else None,
                "submittedAt": now,
            },
            "$setOnInsert": {"userId": user["_id"], "packetId": packet["_id"]},
        },
        upsert=True
    )
    if scored["isCompleted"]:
        logger.info(f"✅ User {user['_id']} completed question packet {packet['_id']}")
    return success_response("Answers submitted successfully", scored)


@router.post("/{packet_id}/answer-question")
async def answer_question(
    packet_id: str,
    data: AnswerQuestionRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    packet = await get_packet_or_404(db, packet_id)
    questions = packet.get("questions", [])
    if data.questionIndex < 0 or data.questionIndex >= len(questions):
        raise HTTPException(status_code=400, detail="Invalid question index")

    question = questions[data.questionIndex]
    now = datetime.utcnow()
    answer = {
        "questionIndex": data.questionIndex,
        "userAnswer": data.userAnswer,
        "correctAnswer": question.get("correctAnswer"),
        "isCorrect": data.userAnswer == question.get("correctAnswer"),
        "explanation": question.get("reasonForCorrectAnswer"),
        "answeredAt": now,
    }

    record = await get_packet_answer(db, user["_id"], packet["_id"])
    answers = [a for a in (record or {}).get("answers", []) if a.get("questionIndex") != data.questionIndex]
    answers.append(answer)
    answers.sort(key=lambda a: a["questionIndex"])

    total = len(questions)
    correct = sum(1 for a in answers if a.get("isCorrect"))
    is_completed = is_packet_completed(answers, total)
    update = {
        "category": packet.get("subjectCategory"),
        "answers": answers,
        "correctAnswers": correct,
        "totalQuestions": total,
        "score": round(correct / total * 100),
        "isCompleted": is_completed,
        "completedAt": (record or {}).get("completedAt") or now if is_completed else None,
        "submittedAt": now,
    }
    await db.question_packet_answers.update_one(
        {"userId": user["_id"], "packetId": packet["_id"]},
        {"$set": update, "$setOnInsert": {"userId": user["_id"], "packetId": packet["_id"]}},
        upsert=True
    )

    return success_response("Answer submitted successfully", {
        "questionIndex": data.questionIndex,
        "userAnswer": data.userAnswer,
        "correctAnswer": answer["correctAnswer"],
        "isCorrect": answer["isCorrect"],
        "explanation": answer["explanation"],
        "progress": {
            "answered": len(answers),
            "total": total,
            "correct": correct,
            "isCompleted": is_completed,
            "score": update["score"],
        },
    })


@router.get("/{packet_id}/progress")
async def packet_progress(
    packet_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    packet = await get_packet_or_404(db, packet_id)
    questions = packet.get("questions", [])
    record = await get_packet_answer(db, user["_id"], packet["_id"])

    by_index = {
        a["questionIndex"]: {
            "userAnswer": a.get("userAnswer"),
            "isCorrect": a.get("isCorrect", False),
            "answeredAt": a.get("answeredAt") or (record or {}).get("submittedAt"),
        }
        for a in (record or {}).get("answers", [])
    }
    total = len(questions)
    correct = sum(1 for a in by_index.values() if a["isCorrect"])

    return success_response("Question packet progress retrieved successfully", {
        "questionPacketId": packet["_id"],
        "progress": {
            "answered": len(by_index),
            "total": total,
            "correct": correct,
            "score": correct / total * 100 if total else 0,
            "isCompleted": is_packet_completed((record or {}).get("answers", []), total),
            "allCorrect": correct == total,
        },
        "answers": {str(index): value for index, value in by_index.items()},
        "questions": [
            {
                "index": index,
                "questionText": q.get("questionText"),
                "options": q.get("options", []),
                "correctAnswer": q.get("correctAnswer"),
                "explanation": q.get("reasonForCorrectAnswer"),
                "isAnswered": index in by_index,
                "userAnswer": by_index[index]["userAnswer"] if index in by_index else None,
                "isCorrect": by_index[index]["isCorrect"] if index in by_index else False,
            }
            for index, q in enumerate(questions)
        ],
    })
