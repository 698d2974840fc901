"""
Plan Selection Router
Choose-a-plan flow: free plans start a trial immediately, paid plans hand
off to Stripe or PayPal checkout.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from gnosis.billing import database as billing_db
from gnosis.billing import subscription_rules as rules
from gnosis.billing.models import PlanSelectRequest
from gnosis.billing.payment_utils import has_required_billing_fields
from gnosis.core.database import get_db
from gnosis.core.dependencies import get_current_user
from gnosis.core.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Plan Selection"])

PAYMENT_OPTIONS = {
    "stripe": {"enabled": True, "description": "Pay with credit/debit card via Stripe"},
    "paypal": {"enabled": True, "description": "Pay with PayPal account"},
}

NEXT_STEPS = {
    "message": "Choose your preferred payment method to complete the subscription",
    "endpoints": {
        "stripe": "/api/stripe/create-payment-intent",
        "paypal": "/api/paypal/create-order",
    },
}


@router.get("/plans")
async def available_plans(db: AsyncIOMotorDatabase = Depends(get_db)):
    plans = await db.plans.find({"isActive": True}).sort("price", ASCENDING).to_list(length=None)
    return success_response("Plans retrieved successfully", {
        "plans": [{**billing_db.plan_summary(p), "isFree": rules.is_free_plan(p)} for p in plans]
    })


@router.get("/current-subscription")
async def current_subscription(user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    sub = await billing_db.find_live_subscription(db, user["_id"])
    if not sub:
        return success_response("No active subscription found", {"hasSubscription": False, "subscription": None})

    plan = await db.plans.find_one({"_id": sub.get("planId")}) or {}
    now = datetime.utcnow()
    trial_active = rules.is_trial_currently_active(sub, now)
    return success_response("Current subscription retrieved successfully", {
        "hasSubscription": True,
        "subscription": {
            "planId": sub.get("planId"),
            "status": sub.get("status"),
            "startDate": sub.get("startDate"),
            "endDate": sub.get("endDate"),
            "trialEndDate": sub.get("trialEndDate"),
            "isTrialActive": trial_active,
            "autoRenew": sub.get("autoRenew", True),
            "nextBillingDate": sub.get("nextBillingDate"),
            "paymentMethod": sub.get("paymentMethod"),
            "trialStatus": {
                "isTrialActive": trial_active,
                "isTrialExpired": rules.is_trial_expired(sub, now),
                "daysRemaining": rules.days_remaining(sub, now),
                "isExpired": rules.is_expired(sub, now),
                "trialEndDate": sub.get("trialEndDate"),
                "endDate": sub.get("endDate"),
            },
            "plan": {
                "name": plan.get("name"),
                "tagline": plan.get("tagline"),
                "price": plan.get("price"),
                "currency": plan.get("currency"),
                "billingCycle": plan.get("billingCycle"),
                "features": plan.get("features"),
                "trialDays": plan.get("trialDays"),
            },
        },
    })


@router.post("/select-plan")
async def select_plan(
    data: PlanSelectRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not data.planId:
        raise HTTPException(status_code=400, detail="Plan ID is required")

    plan = await billing_db.get_plan(db, data.planId)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    if not plan.get("isActive", True):
        raise HTTPException(status_code=400, detail="Plan is not available for selection")

    await billing_db.enforce_upgrade_rule(db, user["_id"], plan, message="You already have an active subscription")
    billing_info = data.billingInfo or {}

    if rules.is_free_plan(plan):
        if not billing_info.get("firstName") or not billing_info.get("lastName"):
            raise HTTPException(status_code=400, detail="First name and last name are required for free trial")

        sub = rules.build_subscription(
            user["_id"],
            plan,
            {
                "firstName": billing_info["firstName"],
                "lastName": billing_info["lastName"],
                "country": billing_info.get("country") or "US",
                "phoneNumber": billing_info.get("phoneNumber") or "",
                "isCompany": False,
            },
            rules.PaymentMethod.FREE.value,
            status=rules.SubscriptionStatus.TRIAL.value,
        )
        # a free trial ends with its trial period
        sub["isTrialActive"] = True
        sub["trialEndDate"] = sub["trialEndDate"] or sub["startDate"]
        sub["endDate"] = sub["trialEndDate"]
        sub["nextBillingDate"] = sub["trialEndDate"]

        sub = await billing_db.insert_subscription(db, sub)
        logger.info(f"✅ Free trial started for user {user['_id']} ({plan.get('name')})")
        return success_response("Free trial activated successfully", {
            "subscription": await billing_db.attach_plan(db, sub),
            "isFreePlan": True,
            "message": f"Your {rules.trial_days_for(plan)}-day free trial has started!",
        })

    if not has_required_billing_fields(billing_info):
        raise HTTPException(
            status_code=400,
            detail="Complete billing information (firstName, lastName, country) is required for paid plans",
        )

    return success_response("Plan selected, payment required", {
        "plan": billing_db.plan_summary(plan),
        "billingInfo": {
            "firstName": billing_info["firstName"],
            "lastName": billing_info["lastName"],
            "country": billing_info["country"],
            "phoneNumber": billing_info.get("phoneNumber") or "",
            "isCompany": bool(billing_info.get("isCompany")),
            "companyName": billing_info.get("companyName") or "",
        },
        "paymentOptions": PAYMENT_OPTIONS,
        "nextSteps": NEXT_STEPS,
    })
