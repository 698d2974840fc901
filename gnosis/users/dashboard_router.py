"""
Dashboard Router
Admin statistics over users, reviews, question packets and About Us content.
"""

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from gnosis.core.database import get_db
from gnosis.core.dependencies import require_admin
from gnosis.core.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Dashboard"])

RECENT_DAYS = 7
REGISTRATION_WINDOW_DAYS = 30


async def _group_counts(collection, field: str) -> dict:
    rows = await collection.aggregate([{"$group": {"_id": f"${field}", "count": {"$sum": 1}}}]).to_list(length=None)
    return {str(row["_id"]): row["count"] for row in rows}


@router.get("/stats")
async def dashboard_stats(admin: dict = Depends(require_admin), db: AsyncIOMotorDatabase = Depends(get_db)):
    since = datetime.utcnow() - timedelta(days=RECENT_DAYS)

    students = await db.users.count_documents({"role": "student"})
    reviews = {s: await db.reviews.count_documents({"status": s}) for s in ("pending", "approved", "declined")}
    packets = await db.question_packets.count_documents({})

    sections = await db.about_us.find({"isActive": True}, {"updatedAt": 1}).sort("updatedAt", DESCENDING).to_list(length=None)
    last_about_update = sections[0].get("updatedAt") if sections else None

    recent_students = await db.users.count_documents({"role": "student", "createdAt": {"$gte": since}})
    recent_reviews = await db.reviews.count_documents({"createdAt": {"$gte": since}})
    recent_packets = await db.question_packets.count_documents({"createdAt": {"$gte": since}})

    return success_response("Dashboard statistics retrieved successfully", {
        "overview": {
            "studentCount": students,
            "pendingReviewsCount": reviews["pending"],
            "questionPacketCount": packets,
            "aboutUsSectionsCount": len(sections),
            "lastAboutUsUpdate": last_about_update,
        },
        "detailed": {
            "users": {
                "total": await db.users.count_documents({}),
                "students": students,
                "admins": await db.users.count_documents({"role": "admin"}),
                "recentRegistrations": recent_students,
            },
            "reviews": {"total": sum(reviews.values()), **reviews, "recent": recent_reviews},
            "questionPackets": {
                "total": packets,
                "active": await db.question_packets.count_documents({"status": "Active"}),
                "draft": await db.question_packets.count_documents({"status": "Draft"}),
                "recent": recent_packets,
            },
            "aboutUs": {"totalSections": len(sections), "lastUpdated": last_about_update},
        },
        "recentActivity": {
            "newStudents": recent_students,
            "newReviews": recent_reviews,
            "newQuestionPackets": recent_packets,
        },
        "lastUpdated": datetime.utcnow(),
    })


@router.get("/users")
async def user_stats(admin: dict = Depends(require_admin), db: AsyncIOMotorDatabase = Depends(get_db)):
    total = await db.users.count_documents({})
    with_pics = await db.users.count_documents({"profilePic": {"$nin": [None, ""]}})
    since = datetime.utcnow() - timedelta(days=REGISTRATION_WINDOW_DAYS)

    return success_response("User statistics retrieved successfully", {
        "total": total,
        "byRole": {
            "students": await db.users.count_documents({"role": "student"}),
            "admins": await db.users.count_documents({"role": "admin"}),
        },
        "byProvider": {
            provider: await db.users.count_documents({"provider": provider})
            for provider in ("local", "google", "apple")
        },
        "recentRegistrations": await db.users.count_documents({"createdAt": {"$gte": since}}),
        "usersWithProfilePics": with_pics,
        "profilePicPercentage": round(with_pics / total * 100) if total else 0,
    })


@router.get("/reviews")
async def review_stats(admin: dict = Depends(require_admin), db: AsyncIOMotorDatabase = Depends(get_db)):
    approved = await db.reviews.find({"status": "approved"}, {"rating": 1}).to_list(length=None)
    ratings = [r["rating"] for r in approved if r.get("rating") is not None]

    distribution = {}
    for rating in sorted(ratings):
        key = f"rating_{rating:g}"
        distribution[key] = distribution.get(key, 0) + 1

    return success_response("Review statistics retrieved successfully", {
        "total": await db.reviews.count_documents({}),
        "byStatus": {
            s: await db.reviews.count_documents({"status": s}) for s in ("pending", "approved", "declined")
        },
        "averageRating": round(sum(ratings) / len(ratings), 1) if ratings else 0,
        "totalRatings": len(ratings),
        "ratingDistribution": distribution,
    })


@router.get("/question-packets")
async def question_packet_stats(admin: dict = Depends(require_admin), db: AsyncIOMotorDatabase = Depends(get_db)):
    total = await db.question_packets.count_documents({})
    sizes = [
        p.get("numberOfQuestions", 0)
        for p in await db.question_packets.find({}, {"numberOfQuestions": 1}).to_list(length=None)
    ]

    return success_response("Question packet statistics retrieved successfully", {
        "total": total,
        "byStatus": {
            "active": await db.question_packets.count_documents({"status": "Active"}),
            "draft": await db.question_packets.count_documents({"status": "Draft"}),
        },
        "bySubject": await _group_counts(db.question_packets, "subjectCategory"),
        "byDifficulty": await _group_counts(db.question_packets, "difficultyLevel"),
        "averageQuestions": round(sum(sizes) / len(sizes), 1) if sizes else 0,
        "totalQuestions": sum(sizes),
    })
