"""
Branch Router
Subject tracks (math / reading & writing), per-user progress and guide books
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from gnosis.core.database import get_db, to_object_id
from gnosis.core.dependencies import get_optional_user, require_admin
from gnosis.core.responses import success_response
from gnosis.learning.database import (
    get_branch_or_404,
    progress_from_user_level,
    user_levels_by_branch,
)
from gnosis.learning.models import (
    BranchCategory,
    BranchCreate,
    BranchUpdate,
    CATEGORIES,
    GuideBookCreate,
    INVALID_CATEGORY_MSG,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Branches"])


# ==================== HELPER FUNCTIONS ====================

async def _branches_with_progress(db: AsyncIOMotorDatabase, query: dict, user: Optional[dict]) -> list[dict]:
    cursor = db.branches.find(query).sort([("category", ASCENDING), ("createdAt", ASCENDING)])
    branches = await cursor.to_list(length=None)
    levels = await user_levels_by_branch(db, user["_id"]) if user else {}
    for branch in branches:
        branch["userProgress"] = progress_from_user_level(levels.get(str(branch["_id"])))
    return branches


# ==================== BRANCH ENDPOINTS ====================

@router.get("/")
async def list_branches(
    user: Optional[dict] = Depends(get_optional_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    branches = await _branches_with_progress(db, {"isActive": True}, user)
    return success_response("Branches retrieved successfully", {
        "mathBranches": [b for b in branches if b.get("category") == BranchCategory.MATH.value],
        "readingWritingBranches": [b for b in branches if b.get("category") == BranchCategory.READING_WRITING.value],
    })


@router.get("/category/{category}")
async def branches_by_category(
    category: str,
    user: Optional[dict] = Depends(get_optional_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=INVALID_CATEGORY_MSG)

    branches = await _branches_with_progress(db, {"category": category, "isActive": True}, user)
    return success_response(f"{category} branches retrieved successfully", {
        "category": category,
        "branches": branches,
        "count": len(branches),
    })


@router.get("/id/{branch_id}")
async def get_branch(branch_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    branch = await get_branch_or_404(db, branch_id)
    return success_response("Branch retrieved successfully", {"branch": branch})


@router.get("/detail/{branch_id}")
async def get_branch_detail(branch_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    branch = await get_branch_or_404(db, branch_id)
    return success_response("Branch details retrieved successfully", {
        "name": branch.get("name"),
        "description": branch.get("description"),
    })


@router.post("/")
async def create_branch(
    data: BranchCreate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not (data.name and data.description and data.icon and data.category):
        raise HTTPException(status_code=400, detail="Name, description, icon, and category are required")
    if data.category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=INVALID_CATEGORY_MSG)

    name = data.name.strip()
    if await db.branches.find_one({"name": name, "category": data.category}):
        raise HTTPException(status_code=400, detail="Branch with this name already exists in this category")

    now = datetime.utcnow()
    branch = {
        "name": name,
        "description": data.description.strip(),
        "icon": data.icon,
        "category": data.category,
        "isActive": True,
        "createdBy": admin["_id"],
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = await db.branches.insert_one(branch)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Branch with this name already exists in this category")
    branch["_id"] = result.inserted_id
    logger.info(f"✅ Branch created: {name} ({data.category})")
    return success_response("Branch created successfully", {"branch": branch}, 201)


@router.put("/{branch_id}")
async def update_branch(
    branch_id: str,
    data: BranchUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    branch = await get_branch_or_404(db, branch_id)
    updates = data.model_dump(exclude_none=True)
    if "category" in updates and updates["category"] not in CATEGORIES:
        raise HTTPException(status_code=400, detail=INVALID_CATEGORY_MSG)

    name = updates.get("name", branch["name"])
    category = updates.get("category", branch["category"])
    clash = await db.branches.find_one({"name": name, "category": category, "_id": {"$ne": branch["_id"]}})
    if clash:
        raise HTTPException(status_code=400, detail="Branch with this name already exists in this category")

    updates["updatedAt"] = datetime.utcnow()
    await db.branches.update_one({"_id": branch["_id"]}, {"$set": updates})
    branch.update(updates)
    return success_response("Branch updated successfully", {"branch": branch})


@router.delete("/{branch_id}")
async def delete_branch(
    branch_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    branch = await get_branch_or_404(db, branch_id)
    await db.branches.delete_one({"_id": branch["_id"]})
    logger.info(f"Branch deleted: {branch.get('name')}")
    return success_response("Branch deleted successfully")


# ==================== GUIDE BOOKS ====================

@router.post("/guide-book")
async def create_guide_book(
    data: GuideBookCreate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    branch = await get_branch_or_404(db, data.branchId)
    if await db.guide_books.find_one({"branchId": branch["_id"]}):
        raise HTTPException(status_code=400, detail="Guide book already exists for this branch")

    now = datetime.utcnow()
    guide_book = {
        "branchId": branch["_id"],
        "title": data.title.strip(),
        "description": data.description.model_dump(),
        "isActive": True,
        "createdBy": admin["_id"],
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = await db.guide_books.insert_one(guide_book)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Guide book already exists for this branch")
    guide_book["_id"] = result.inserted_id
    return success_response("Guide book created successfully", {"guideBook": guide_book}, 201)


@router.get("/{branch_id}/guide-book")
async def get_guide_book(branch_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    guide_book = await db.guide_books.find_one({"branchId": to_object_id(branch_id, "branch"), "isActive": True})
    if not guide_book:
        raise HTTPException(status_code=404, detail="Guide book not found for this branch")
    return success_response("Guide book retrieved successfully", {"guideBook": guide_book})
