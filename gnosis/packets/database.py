from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from gnosis.core.database import to_object_id
from gnosis.packets.models import OPTIONS_PER_QUESTION


def calculate_progress(questions: Optional[list], answers: Optional[list] = None) -> dict:
    """Progress of a user through a packet: answered vs. total questions"""
    total = len(questions or [])
    answered = len(answers or [])
    if answered == 0:
        status = "empty"
    elif answered < total:
        status = "incomplete"
    else:
        status = "complete"
    return {
        "current": answered,
        "max": total,
        "percentage": round(answered / total * 100) if total else 0,
        "isComplete": total > 0 and answered >= total,
        "status": status,
    }


def validate_packet_questions(questions: list[dict]) -> Optional[str]:
    """Error message for the first invalid question, None when all are valid"""
    if not questions:
        return "A question packet must contain at least 1 question"
    for i, question in enumerate(questions, start=1):
        if not (question.get("questionText") and question.get("options")
                and question.get("correctAnswer") and question.get("reasonForCorrectAnswer")):
            return f"Question {i} is missing required fields"
        if len(question["options"]) != OPTIONS_PER_QUESTION:
            return f"Question {i} must have exactly {OPTIONS_PER_QUESTION} options"
    return None


def is_packet_completed(answers: list[dict], total: int) -> bool:
    """A packet counts as completed only when every question has a correct answer"""
    return total > 0 and len(answers) == total and all(a.get("isCorrect") for a in answers)


def score_answers(questions: list[dict], answers: list[str]) -> dict:
    results = []
    for index, (question, user_answer) in enumerate(zip(questions, answers)):
        results.append({
            "questionIndex": index,
            "userAnswer": user_answer,
            "correctAnswer": question.get("correctAnswer"),
            "isCorrect": user_answer == question.get("correctAnswer"),
            "explanation": question.get("reasonForCorrectAnswer"),
        })
    correct = sum(1 for r in results if r["isCorrect"])
    total = len(questions)
    return {
        "correctAnswers": correct,
        "totalQuestions": total,
        "score": correct / total * 100 if total else 0,
        "isCompleted": is_packet_completed(results, total),
        "results": results,
    }


async def get_packet_or_404(db: AsyncIOMotorDatabase, packet_id: str) -> dict:
    packet = await db.question_packets.find_one({"_id": to_object_id(packet_id, "question packet")})
    if not packet:
        raise HTTPException(status_code=404, detail="Question packet not found")
    return packet


async def get_packet_answer(db: AsyncIOMotorDatabase, user_id, packet_id) -> Optional[dict]:
    return await db.question_packet_answers.find_one({"userId": user_id, "packetId": packet_id})


def packet_document(data: dict, user_id, status: str) -> dict:
    now = datetime.utcnow()
    questions = data.get("questions") or []
    return {
        **data,
        "questions": questions,
        "numberOfQuestions": len(questions),
        "status": status,
        "createdBy": user_id,
        "createdAt": now,
        "updatedAt": now,
    }
