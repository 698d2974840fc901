"""
Plan Router
Subscription plan catalogue (public reads, admin writes)
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from gnosis.billing import database as billing_db
from gnosis.billing.models import PlanCreate, PlanUpdate
from gnosis.core.database import get_db
from gnosis.core.dependencies import require_admin
from gnosis.core.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Plans"])


async def _plan_or_404(db: AsyncIOMotorDatabase, plan_id: str) -> dict:
    plan = await billing_db.get_plan(db, plan_id)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    return plan


@router.get("/")
async def list_plans(db: AsyncIOMotorDatabase = Depends(get_db)):
    plans = await billing_db.list_plans(db)
    return success_response("Plans retrieved successfully", {"plans": plans})


@router.get("/active")
async def active_plans(db: AsyncIOMotorDatabase = Depends(get_db)):
    plans = await billing_db.list_plans(db)
    return success_response("Active plans retrieved successfully", {"plans": plans})


@router.get("/{plan_id}")
async def get_plan(plan_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    plan = await _plan_or_404(db, plan_id)
    return success_response("Plan retrieved successfully", {"plan": plan})


@router.post("/")
async def create_plan(
    data: PlanCreate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not data.name or not data.tagline or data.price is None or not data.features:
        raise HTTPException(status_code=400, detail="Name, tagline, price, and features are required")

    if await db.plans.find_one({"name": data.name}):
        raise HTTPException(status_code=400, detail="Plan with this name already exists")

    now = datetime.utcnow()
    plan = {
        **data.model_dump(mode="json"),
        "isActive": True,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = await db.plans.insert_one(plan)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Plan with this name already exists")
    plan["_id"] = result.inserted_id
    logger.info(f"✅ Plan created: {data.name} ({data.price} {data.currency})")
    return success_response("Plan created successfully", {"plan": plan}, 201)


@router.put("/{plan_id}")
async def update_plan(
    plan_id: str,
    data: PlanUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    plan = await _plan_or_404(db, plan_id)
    updates = data.model_dump(exclude_none=True, mode="json")
    if "name" in updates and updates["name"] != plan["name"]:
        if await db.plans.find_one({"name": updates["name"], "_id": {"$ne": plan["_id"]}}):
            raise HTTPException(status_code=400, detail="Plan with this name already exists")

    updates["updatedAt"] = datetime.utcnow()
    await db.plans.update_one({"_id": plan["_id"]}, {"$set": updates})
    plan.update(updates)
    return success_response("Plan updated successfully", {"plan": plan})


@router.delete("/{plan_id}")
async def delete_plan(
    plan_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    plan = await _plan_or_404(db, plan_id)
    await db.plans.delete_one({"_id": plan["_id"]})
    return success_response("Plan deleted successfully")
