"""
Subscription Router
User subscriptions against plans, plus admin listing/analytics
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from gnosis.billing import database as billing_db
from gnosis.billing import subscription_rules as rules
from gnosis.billing.models import CancelRequest, SubscriptionCreate
from gnosis.billing.payment_utils import has_required_billing_fields
from gnosis.core.database import get_db, paginate, to_object_id
from gnosis.core.dependencies import get_current_user, require_admin
from gnosis.core.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Subscriptions"])


async def _owned_subscription(db: AsyncIOMotorDatabase, subscription_id: str, user_id) -> dict:
    sub = await db.user_subscriptions.find_one({
        "_id": to_object_id(subscription_id, "subscription"),
        "userId": user_id,
    })
    if not sub:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return sub


async def _attach_user(db: AsyncIOMotorDatabase, sub: dict) -> dict:
    user = await db.users.find_one({"_id": sub.get("userId")}, {"firstName": 1, "lastName": 1, "email": 1})
    sub["user"] = user
    return sub


# ==================== USER ENDPOINTS ====================

@router.post("/")
async def create_subscription(
    data: SubscriptionCreate,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    plan = await billing_db.get_plan(db, data.planId)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")

    await billing_db.enforce_upgrade_rule(db, user["_id"], plan)

    billing_info = data.billingInfo.model_dump(exclude_none=True) if data.billingInfo else None
    if not has_required_billing_fields(billing_info):
        raise HTTPException(status_code=400, detail="Billing information (firstName, lastName, country) is required")

    sub = rules.build_subscription(
        user["_id"], plan, billing_info, data.paymentMethod, discount=data.discountAmount
    )
    sub["cardDetails"] = rules.sanitize_card_details(
        data.cardDetails.model_dump(exclude_none=True) if data.cardDetails else None
    )
    sub["promoCode"] = data.promoCode
    sub["discountAmount"] = data.discountAmount

    sub = await billing_db.insert_subscription(db, sub)
    logger.info(f"✅ Subscription created for user {user['_id']} on plan {plan.get('name')}")
    return success_response(
        "Subscription created successfully",
        {"subscription": await billing_db.attach_plan(db, sub)},
        201,
    )


@router.get("/my-subscription")
async def my_subscription(user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    sub = await billing_db.find_live_subscription(db, user["_id"])
    if not sub:
        raise HTTPException(status_code=404, detail="No active subscription found")
    return success_response("Subscription retrieved successfully", {"subscription": await billing_db.attach_plan(db, sub)})


@router.get("/status")
async def subscription_status(user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    sub = await billing_db.find_live_subscription(db, user["_id"])
    if not sub:
        return success_response("No active subscription", {"hasActiveSubscription": False, "subscription": None})

    now = datetime.utcnow()
    is_active = rules.is_active(sub, now)
    is_trial_active = rules.is_trial_currently_active(sub, now)
    data = await billing_db.attach_plan(db, sub)
    data.update({"isActive": is_active, "isTrialActive": is_trial_active})
    return success_response("Subscription status checked", {
        "hasActiveSubscription": is_active or is_trial_active,
        "subscription": data,
    })


@router.put("/{subscription_id}/cancel")
async def cancel_subscription(
    subscription_id: str,
    data: Optional[CancelRequest] = None,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await _owned_subscription(db, subscription_id, user["_id"])
    reason = data.reason if data and data.reason else "Cancelled by user"
    update = rules.cancellation_update(reason)
    await db.user_subscriptions.update_one({"_id": sub["_id"]}, {"$set": update})
    sub.update(update)
    logger.info(f"Subscription {sub['_id']} cancelled: {reason}")
    return success_response("Subscription cancelled successfully", {"subscription": sub})


@router.put("/{subscription_id}/renew")
async def renew_subscription(
    subscription_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await _owned_subscription(db, subscription_id, user["_id"])
    if sub.get("status") != rules.SubscriptionStatus.EXPIRED.value:
        raise HTTPException(status_code=400, detail="Subscription is not expired")

    now = datetime.utcnow()
    end = now + timedelta(days=rules.BILLING_PERIOD_DAYS)
    update = {
        "status": rules.SubscriptionStatus.ACTIVE.value,
        "startDate": now,
        "endDate": end,
        "nextBillingDate": end,
        "lastPaymentDate": now,
        "isTrialActive": False,
        "updatedAt": now,
    }
    await db.user_subscriptions.update_one({"_id": sub["_id"]}, {"$set": update})
    sub.update(update)
    return success_response("Subscription renewed successfully", {"subscription": await billing_db.attach_plan(db, sub)})


# ==================== ADMIN ENDPOINTS ====================

@router.get("/all")
async def all_subscriptions(
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    page, limit, skip = paginate(page, limit)
    query = {"status": status} if status else {}
    cursor = db.user_subscriptions.find(query).sort("createdAt", DESCENDING).skip(skip).limit(limit)
    subs = [await _attach_user(db, await billing_db.attach_plan(db, s)) for s in await cursor.to_list(length=limit)]
    total = await db.user_subscriptions.count_documents(query)
    return success_response("Subscriptions retrieved successfully", {
        "subscriptions": subs,
        "totalPages": -(-total // limit),
        "currentPage": page,
        "total": total,
    })


@router.get("/analytics")
async def subscription_analytics(admin: dict = Depends(require_admin), db: AsyncIOMotorDatabase = Depends(get_db)):
    counts = {}
    for status in rules.SubscriptionStatus:
        counts[status.value] = await db.user_subscriptions.count_documents({"status": status.value})

    horizon = datetime.utcnow() + timedelta(days=rules.EXPIRING_SOON_DAYS)
    expiring = await db.user_subscriptions.find({
        "endDate": {"$lte": horizon},
        "status": {"$in": rules.LIVE_STATUSES},
    }).to_list(length=None)

    return success_response("Subscription analytics retrieved successfully", {"analytics": {
        "totalSubscriptions": await db.user_subscriptions.count_documents({}),
        "activeSubscriptions": counts["active"],
        "trialSubscriptions": counts["trial"],
        "expiredSubscriptions": counts["expired"],
        "cancelledSubscriptions": counts["cancelled"],
        "expiringSoon": [await _attach_user(db, await billing_db.attach_plan(db, s)) for s in expiring],
    }})


@router.get("/{subscription_id}")
async def get_subscription(
    subscription_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await billing_db.get_subscription(db, subscription_id)
    if not sub:
        raise HTTPException(status_code=404, detail="Subscription not found")
    if sub.get("userId") != user["_id"] and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Access denied")
    data = await _attach_user(db, await billing_db.attach_plan(db, sub))
    return success_response("Subscription retrieved successfully", {"subscription": data})
