"""
Reviews Router
Students rate an admin; the assigned admin approves or declines.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from gnosis.community.models import REVIEW_STATUSES, ReviewCreate, ReviewStatus
from gnosis.core.database import get_db, paginate, pagination_meta, to_object_id
from gnosis.core.dependencies import require_admin, require_student
from gnosis.core.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reviews"])

STUDENT_FIELDS = {"firstName": 1, "lastName": 1, "profilePic": 1}
ADMIN_FIELDS = {"firstName": 1, "lastName": 1}
INVALID_STATUS_MSG = "Invalid status. Must be one of: pending, approved, declined"


# ==================== HELPER FUNCTIONS ====================

async def populate_review(db: AsyncIOMotorDatabase, review: dict) -> dict:
    review = dict(review)
    review["studentId"] = await db.users.find_one({"_id": review.get("studentId")}, STUDENT_FIELDS) or review.get("studentId")
    review["adminId"] = await db.users.find_one({"_id": review.get("adminId")}, ADMIN_FIELDS) or review.get("adminId")
    return review


async def review_counts(db: AsyncIOMotorDatabase, admin_id) -> dict:
    counts = {}
    for status in REVIEW_STATUSES:
        counts[status] = await db.reviews.count_documents({"status": status, "adminId": admin_id})
    counts["total"] = sum(counts.values())
    return counts


async def _paged_reviews(db: AsyncIOMotorDatabase, query: dict, page: int, limit: int) -> tuple[list[dict], dict]:
    page, limit, skip = paginate(page, limit)
    cursor = db.reviews.find(query).sort("createdAt", DESCENDING).skip(skip).limit(limit)
    reviews = [await populate_review(db, r) for r in await cursor.to_list(length=limit)]
    total = await db.reviews.count_documents(query)
    return reviews, pagination_meta(page, limit, total, "Reviews")


def _check_status(status: str) -> None:
    if status not in REVIEW_STATUSES:
        raise HTTPException(status_code=400, detail=INVALID_STATUS_MSG)


async def _process_review(db: AsyncIOMotorDatabase, review_id: str, admin: dict, status: ReviewStatus) -> dict:
    """Move a pending review to approved/declined; only its assigned admin may do so"""
    verb = "approve" if status == ReviewStatus.APPROVED else "decline"
    review = await db.reviews.find_one({"_id": to_object_id(review_id, "review")})
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")

    if review.get("adminId") != admin["_id"]:
        raise HTTPException(status_code=403, detail=f"You can only {verb} reviews assigned to you")

    if review.get("status") != ReviewStatus.PENDING.value:
        raise HTTPException(status_code=400, detail="Review has already been processed")

    now = datetime.utcnow()
    stamp = "approvedAt" if status == ReviewStatus.APPROVED else "declinedAt"
    update = {"status": status.value, stamp: now, "updatedAt": now}
    await db.reviews.update_one({"_id": review["_id"]}, {"$set": update})
    review.update(update)
    logger.info(f"✅ Review {review['_id']} {status.value} by {admin['_id']}")
    return await populate_review(db, review)


# ==================== STUDENT ENDPOINTS ====================

@router.post("/")
async def add_review(
    data: ReviewCreate,
    student: dict = Depends(require_student),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    admin_id = to_object_id(data.adminId, "admin")
    admin = await db.users.find_one({"_id": admin_id})
    if not admin:
        raise HTTPException(status_code=404, detail="Admin not found")
    if admin.get("role") != "admin":
        raise HTTPException(status_code=400, detail="Selected user is not an admin")

    now = datetime.utcnow()
    review = {
        "studentId": student["_id"],
        "adminId": admin_id,
        "rating": data.rating,
        "title": data.title,
        "comment": data.comment,
        "status": ReviewStatus.PENDING.value,
        "createdAt": now,
        "updatedAt": now,
    }
    result = await db.reviews.insert_one(review)
    review["_id"] = result.inserted_id

    return success_response(
        "Review submitted successfully",
        {"review": await populate_review(db, review)},
        status_code=201,
    )


@router.get("/my-reviews")
async def my_reviews(
    page: int = 1,
    limit: int = 10,
    student: dict = Depends(require_student),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    reviews, pagination = await _paged_reviews(db, {"studentId": student["_id"]}, page, limit)
    return success_response("Student reviews retrieved successfully", {
        "reviews": reviews,
        "pagination": pagination,
    })


@router.get("/admins")
async def list_admins(student: dict = Depends(require_student), db: AsyncIOMotorDatabase = Depends(get_db)):
    cursor = db.users.find({"role": "admin"}, {"firstName": 1, "lastName": 1, "profilePic": 1})
    admins = await cursor.sort("firstName", ASCENDING).to_list(length=None)
    return success_response("Admins retrieved successfully", {"admins": admins})


# ==================== ADMIN ENDPOINTS ====================

@router.get("/counts")
async def get_counts(admin: dict = Depends(require_admin), db: AsyncIOMotorDatabase = Depends(get_db)):
    return success_response("Review counts retrieved successfully", {"counts": await review_counts(db, admin["_id"])})


@router.get("/status/{status}")
async def reviews_by_status(
    status: str,
    page: int = 1,
    limit: int = 10,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    _check_status(status)
    reviews, pagination = await _paged_reviews(db, {"status": status, "adminId": admin["_id"]}, page, limit)
    return success_response(f"{status.capitalize()} reviews retrieved successfully", {
        "reviews": reviews,
        "status": status,
        "pagination": pagination,
    })


@router.get("/count")
async def reviews_with_counts(
    status: str = "pending",
    page: int = 1,
    limit: int = 10,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    _check_status(status)
    reviews, pagination = await _paged_reviews(db, {"status": status, "adminId": admin["_id"]}, page, limit)
    return success_response("Reviews and counts retrieved successfully", {
        "reviews": reviews,
        "currentStatus": status,
        "counts": await review_counts(db, admin["_id"]),
        "pagination": pagination,
    })


@router.get("/")
async def list_reviews(
    status: str = "pending",
    page: int = 1,
    limit: int = 10,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    _check_status(status)
    reviews, pagination = await _paged_reviews(db, {"status": status, "adminId": admin["_id"]}, page, limit)
    return success_response("Reviews retrieved successfully", {"reviews": reviews, "pagination": pagination})


@router.patch("/{review_id}/approve")
async def approve_review(
    review_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    review = await _process_review(db, review_id, admin, ReviewStatus.APPROVED)
    return success_response("Review approved successfully", {"review": review})


@router.patch("/{review_id}/decline")
async def decline_review(
    review_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    review = await _process_review(db, review_id, admin, ReviewStatus.DECLINED)
    return success_response("Review declined successfully", {"review": review})
