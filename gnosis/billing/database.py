from datetime import datetime
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from gnosis.billing import subscription_rules as rules
from gnosis.core.database import maybe_object_id, to_object_id

# ==================== PLAN CRUD ====================


async def list_plans(db: AsyncIOMotorDatabase, active_only: bool = True) -> list[dict]:
    query = {"isActive": True} if active_only else {}
    cursor = db.plans.find(query).sort([("sortOrder", ASCENDING), ("price", ASCENDING)])
    return await cursor.to_list(length=None)


async def get_plan(db: AsyncIOMotorDatabase, plan_id) -> Optional[dict]:
    return await db.plans.find_one({"_id": to_object_id(plan_id, "plan")})


async def get_active_plan_or_404(db: AsyncIOMotorDatabase, plan_id) -> dict:
    plan = await get_plan(db, plan_id)
    if not plan or not plan.get("isActive", True):
        raise HTTPException(status_code=404, detail="Plan not found or inactive")
    return plan


def plan_summary(plan: dict) -> dict:
    return {
        "id": str(plan["_id"]),
        "name": plan.get("name"),
        "tagline": plan.get("tagline"),
        "price": plan.get("price"),
        "currency": plan.get("currency", "USD"),
        "billingCycle": plan.get("billingCycle", "monthly"),
        "trialDays": plan.get("trialDays", 0),
        "features": plan.get("features", []),
        "isPopular": plan.get("isPopular", False),
    }


# ==================== SUBSCRIPTION LOOKUPS ====================


async def find_live_subscription(db: AsyncIOMotorDatabase, user_id) -> Optional[dict]:
    """Latest active/trial subscription of a user, without expiry checks"""
    cursor = db.user_subscriptions.find(
        {"userId": user_id, "status": {"$in": rules.LIVE_STATUSES}}
    ).sort("createdAt", DESCENDING).limit(1)
    docs = await cursor.to_list(length=1)
    return docs[0] if docs else None


async def find_valid_subscription(db: AsyncIOMotorDatabase, user_id) -> Optional[dict]:
    """
    Live subscription that has not run out.
    A record whose period or trial has ended is moved to `expired` on the way.
    """
    sub = await find_live_subscription(db, user_id)
    if not sub:
        return None
    now = datetime.utcnow()
    if rules.is_expired(sub, now) or rules.is_trial_expired(sub, now):
        await db.user_subscriptions.update_one(
            {"_id": sub["_id"]},
            {"$set": rules.expiry_update(now)}
        )
        return None
    return sub


async def enforce_upgrade_rule(
    db: AsyncIOMotorDatabase,
    user_id,
    plan: dict,
    message: str = "User already has an active subscription",
) -> None:
    """
    Block a second live subscription unless it upgrades a free trial to a
    different paid plan; in that case the trial is cancelled first.
    """
    existing = await find_live_subscription(db, user_id)
    if not existing:
        return
    if rules.is_upgrade_from_free_trial(existing, plan):
        await db.user_subscriptions.update_one(
            {"_id": existing["_id"]},
            {"$set": rules.cancellation_update("Upgraded to paid plan")}
        )
        return
    raise HTTPException(status_code=400, detail=message)


async def insert_subscription(db: AsyncIOMotorDatabase, doc: dict) -> dict:
    result = await db.user_subscriptions.insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


async def get_subscription(db: AsyncIOMotorDatabase, subscription_id) -> Optional[dict]:
    return await db.user_subscriptions.find_one({"_id": to_object_id(subscription_id, "subscription")})


async def attach_plan(db: AsyncIOMotorDatabase, sub: dict) -> dict:
    """Subscription with computed fields and its plan document under `plan`"""
    out = rules.with_computed_fields(sub)
    plan_id = maybe_object_id(sub.get("planId"))
    out["plan"] = await db.plans.find_one({"_id": plan_id}) if plan_id else None
    return out


async def list_user_subscriptions(db: AsyncIOMotorDatabase, user_id, payment_method: Optional[str] = None) -> list[dict]:
    query = {"userId": user_id}
    if payment_method:
        query["paymentMethod"] = payment_method
    cursor = db.user_subscriptions.find(query).sort("createdAt", DESCENDING)
    return [await attach_plan(db, sub) for sub in await cursor.to_list(length=None)]


async def activate_subscription(db: AsyncIOMotorDatabase, sub: dict, extra: Optional[dict] = None) -> dict:
    """Move a pending subscription to trial/active according to its plan"""
    plan = await db.plans.find_one({"_id": sub["planId"]}) or {}
    update = rules.activation_update(plan)
    if extra:
        update.update(extra)
    await db.user_subscriptions.update_one({"_id": sub["_id"]}, {"$set": update})
    sub.update(update)
    return sub


async def cancel_subscription_doc(db: AsyncIOMotorDatabase, sub_id: ObjectId, reason: str, extra: Optional[dict] = None) -> None:
    update = rules.cancellation_update(reason)
    if extra:
        update.update(extra)
    await db.user_subscriptions.update_one({"_id": sub_id}, {"$set": update})
