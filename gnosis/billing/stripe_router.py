"""
Stripe Router
Card checkout through Stripe PaymentIntents

FLOW:
✅ create-payment-intent stores a pending subscription
✅ confirm-payment (or the webhook) activates it
✅ failed / cancelled intents cancel the pending subscription
"""

import logging
from datetime import datetime
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from gnosis.billing import database as billing_db
from gnosis.billing import stripe_gateway as gateway
from gnosis.billing import subscription_rules as rules
from gnosis.billing.models import CheckoutRequest, RefundRequest
from gnosis.billing.payment_utils import (
    PaymentGatewayError,
    has_required_billing_fields,
    payment_metadata,
    validate_billing_info,
    validate_payment_amount,
)
from gnosis.core.config import STRIPE_WEBHOOK_SECRET
from gnosis.core.database import get_db, to_object_id
from gnosis.core.dependencies import get_current_user, require_admin
from gnosis.core.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Stripe"])

SubStatus = rules.SubscriptionStatus


# ==================== HELPER FUNCTIONS ====================

def _card_details(payment_intent) -> dict:
    method = payment_intent.get("payment_method")
    card = method.get("card") if isinstance(method, dict) else None
    if not card:
        return {}
    return {
        "paymentMethodId": method.get("id"),
        "last4": card.get("last4"),
        "brand": card.get("brand"),
        "expiryMonth": str(card.get("exp_month")) if card.get("exp_month") else None,
        "expiryYear": str(card.get("exp_year")) if card.get("exp_year") else None,
    }


def _charge_id(payment_intent) -> Optional[str]:
    charge = payment_intent.get("latest_charge")
    if isinstance(charge, dict):
        return charge.get("id")
    return charge


def intent_summary(payment_intent) -> dict:
    return {
        "id": payment_intent.get("id"),
        "status": payment_intent.get("status"),
        "amount": (payment_intent.get("amount") or 0) / 100,
        "currency": payment_intent.get("currency"),
        "chargeId": _charge_id(payment_intent),
        "card": _card_details(payment_intent),
    }


async def _pending_by_intent(db: AsyncIOMotorDatabase, payment_intent_id: str, user_id=None) -> Optional[dict]:
    query = {"stripeDetails.paymentIntentId": payment_intent_id, "status": SubStatus.PENDING.value}
    if user_id is not None:
        query["userId"] = user_id
    return await db.user_subscriptions.find_one(query)


async def _close_pending(db: AsyncIOMotorDatabase, sub: dict, payment_status: str, reason: str) -> None:
    await billing_db.cancel_subscription_doc(
        db, sub["_id"], reason,
        extra={"stripeDetails": {**sub.get("stripeDetails", {}), "paymentStatus": payment_status}},
    )


# ==================== CHECKOUT ====================

@router.post("/create-payment-intent")
async def create_payment_intent(
    data: CheckoutRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not data.planId:
        raise HTTPException(status_code=400, detail="Plan ID is required")

    billing_info = data.billingInfo
    if not has_required_billing_fields(billing_info):
        raise HTTPException(status_code=400, detail="Billing information (firstName, lastName, country) is required")
    errors = validate_billing_info(billing_info)
    if errors:
        raise HTTPException(status_code=400, detail=f"Billing validation failed: {', '.join(errors)}")

    plan = await billing_db.get_plan(db, data.planId)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    if not plan.get("isActive", True):
        raise HTTPException(status_code=400, detail="Plan is not available for purchase")

    await billing_db.enforce_upgrade_rule(db, user["_id"], plan)

    pricing = rules.compute_pricing(plan, data.discountAmount)
    if pricing["subtotal"] == 0 or pricing["amountDueNow"] == 0:
        sub = rules.build_subscription(
            user["_id"], plan, billing_info, rules.PaymentMethod.FREE.value, discount=data.discountAmount
        )
        sub.update({"promoCode": data.promoCode, "discountAmount": data.discountAmount})
        sub = await billing_db.insert_subscription(db, sub)
        logger.info(f"✅ Free subscription created for user {user['_id']} ({plan.get('name')})")
        return success_response("Free subscription created successfully", {
            "subscription": await billing_db.attach_plan(db, sub),
            "isFreePlan": True,
        })

    amount_error = validate_payment_amount(pricing["amountDueNow"])
    if amount_error:
        raise HTTPException(status_code=400, detail=amount_error)

    try:
        customer = await gateway.create_customer(
            billing_info.get("email") or f"{billing_info['firstName']}.{billing_info['lastName']}@example.com",
            f"{billing_info['firstName']} {billing_info['lastName']}",
            {"userId": str(user["_id"]), "planId": str(plan["_id"]), "billingCountry": billing_info["country"]},
        )
    except PaymentGatewayError as e:
        raise HTTPException(status_code=500, detail=f"Failed to create Stripe customer: {e}")

    try:
        intent = await gateway.create_payment_intent(
            pricing["amountDueNow"],
            pricing["currency"],
            payment_metadata(user["_id"], plan["_id"], planName=plan.get("name"), subscriptionType="one_time"),
        )
    except PaymentGatewayError as e:
        raise HTTPException(status_code=500, detail=f"Failed to create payment intent: {e}")

    sub = rules.build_subscription(
        user["_id"], plan, billing_info, rules.PaymentMethod.STRIPE.value,
        status=SubStatus.PENDING.value, discount=data.discountAmount,
    )
    sub.update({
        "promoCode": data.promoCode,
        "discountAmount": data.discountAmount,
        "stripeDetails": {
            "customerId": customer.id,
            "paymentIntentId": intent.id,
            "paymentStatus": "pending",
        },
    })
    sub = await billing_db.insert_subscription(db, sub)
    logger.info(f"Stripe payment intent {intent.id} created for user {user['_id']}")

    return success_response("Stripe payment intent created successfully", {
        "clientSecret": intent.client_secret,
        "paymentIntentId": intent.id,
        "customerId": customer.id,
        "subscriptionId": sub["_id"],
        "amount": pricing["amountDueNow"],
        "currency": pricing["currency"],
        "plan": {"name": plan.get("name"), "features": plan.get("features", [])},
    })


@router.post("/confirm-payment/{payment_intent_id}")
async def confirm_payment(
    payment_intent_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await _pending_by_intent(db, payment_intent_id, user["_id"])
    if not sub:
        raise HTTPException(status_code=404, detail="Subscription not found or already processed")

    try:
        intent = await gateway.retrieve_payment_intent(payment_intent_id)
    except PaymentGatewayError as e:
        raise HTTPException(status_code=500, detail=f"Failed to confirm payment: {e}")

    if intent.get("status") != "succeeded":
        raise HTTPException(status_code=400, detail=f"Payment failed with status: {intent.get('status')}")

    summary = intent_summary(intent)
    now = datetime.utcnow()
    sub = await billing_db.activate_subscription(db, sub, extra={
        "stripeDetails": {
            **sub.get("stripeDetails", {}),
            **summary["card"],
            "chargeId": summary["chargeId"],
            "paymentStatus": "succeeded",
        },
        "cardDetails": {k: summary["card"].get(k) for k in ("last4", "brand", "expiryMonth", "expiryYear")},
        "lastPaymentDate": now,
    })
    logger.info(f"✅ Stripe payment {payment_intent_id} confirmed, subscription {sub['_id']} activated")

    return success_response("Payment confirmed and subscription activated successfully", {
        "subscription": await billing_db.attach_plan(db, sub),
        "paymentDetails": {
            "paymentIntentId": summary["id"],
            "chargeId": summary["chargeId"],
            "amount": summary["amount"],
            "currency": summary["currency"],
            "status": summary["status"],
            "paymentMethod": {
                "last4": summary["card"].get("last4"),
                "brand": summary["card"].get("brand"),
                "expiryMonth": summary["card"].get("expiryMonth"),
                "expiryYear": summary["card"].get("expiryYear"),
            },
        },
    })


@router.get("/payment-intent/{payment_intent_id}")
async def get_payment_intent(
    payment_intent_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await db.user_subscriptions.find_one({
        "stripeDetails.paymentIntentId": payment_intent_id,
        "userId": user["_id"],
    })
    if not sub:
        raise HTTPException(status_code=404, detail="Payment intent not found")

    try:
        intent = await gateway.retrieve_payment_intent(payment_intent_id)
    except PaymentGatewayError as e:
        raise HTTPException(status_code=500, detail=f"Failed to get payment intent details: {e}")

    return success_response("Payment intent details retrieved successfully", {
        "paymentIntent": intent_summary(intent),
        "subscription": await billing_db.attach_plan(db, sub),
    })


@router.post("/cancel-payment/{payment_intent_id}")
async def cancel_payment(
    payment_intent_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await _pending_by_intent(db, payment_intent_id, user["_id"])
    if not sub:
        raise HTTPException(status_code=404, detail="Payment intent not found or already processed")

    await _close_pending(db, sub, "cancelled", "User cancelled Stripe payment")
    return success_response("Payment cancelled successfully", {
        "paymentIntentId": payment_intent_id,
        "subscriptionId": sub["_id"],
        "status": SubStatus.CANCELLED.value,
    })


# ==================== WEBHOOK ====================

async def handle_intent_succeeded(db: AsyncIOMotorDatabase, intent) -> None:
    sub = await _pending_by_intent(db, intent.get("id"))
    if not sub:
        return
    await billing_db.activate_subscription(db, sub, extra={
        "stripeDetails": {**sub.get("stripeDetails", {}), "paymentStatus": "succeeded"},
        "lastPaymentDate": datetime.utcnow(),
    })
    logger.info(f"✅ Subscription activated via webhook: {sub['_id']}")


async def handle_intent_failed(db: AsyncIOMotorDatabase, intent) -> None:
    sub = await _pending_by_intent(db, intent.get("id"))
    if sub:
        await _close_pending(db, sub, "failed", "Payment failed")
        logger.warning(f"⚠️ Subscription cancelled due to payment failure: {sub['_id']}")


async def handle_intent_canceled(db: AsyncIOMotorDatabase, intent) -> None:
    sub = await _pending_by_intent(db, intent.get("id"))
    if sub:
        await _close_pending(db, sub, "cancelled", "Payment cancelled")
        logger.info(f"Subscription cancelled due to payment cancellation: {sub['_id']}")


WEBHOOK_HANDLERS = {
    "payment_intent.succeeded": handle_intent_succeeded,
    "payment_intent.payment_failed": handle_intent_failed,
    "payment_intent.canceled": handle_intent_canceled,
}


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Stripe webhook - NO AUTH (Stripe signature verification)"""
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")
    if not STRIPE_WEBHOOK_SECRET:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    payload = await request.body()
    try:
        event = gateway.construct_event(payload, stripe_signature)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.error(f"❌ Webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event["type"]
    logger.info(f"Stripe webhook received: {event_type}")
    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler:
        await handler(db, event["data"]["object"])
    else:
        logger.info(f"Unhandled webhook event: {event_type}")
    return {"received": True}


# ==================== INFO & HISTORY ====================

@router.get("/info")
async def stripe_info():
    return success_response("Stripe environment info retrieved", gateway.stripe_environment())


@router.get("/subscriptions")
async def my_stripe_subscriptions(user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    subs = await billing_db.list_user_subscriptions(db, user["_id"], rules.PaymentMethod.STRIPE.value)
    return success_response("Stripe subscriptions retrieved successfully", {"subscriptions": subs})


@router.post("/refund/{subscription_id}")
async def refund_payment(
    subscription_id: str,
    data: Optional[RefundRequest] = None,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await db.user_subscriptions.find_one({
        "_id": to_object_id(subscription_id, "subscription"),
        "paymentMethod": rules.PaymentMethod.STRIPE.value,
    })
    if not sub:
        raise HTTPException(status_code=404, detail="Stripe subscription not found")

    charge_id = (sub.get("stripeDetails") or {}).get("chargeId")
    if not charge_id:
        raise HTTPException(status_code=400, detail="No charge ID found for refund")

    data = data or RefundRequest()
    reason = data.reason or "requested_by_customer"
    try:
        refund = await gateway.refund_payment(charge_id, data.amount, reason)
    except PaymentGatewayError as e:
        raise HTTPException(status_code=500, detail=f"Refund failed: {e}")

    await billing_db.cancel_subscription_doc(
        db, sub["_id"], f"Refunded: {reason}",
        extra={"stripeDetails": {**sub.get("stripeDetails", {}), "paymentStatus": "refunded"}},
    )
    logger.info(f"Refund {refund.get('id')} issued for subscription {sub['_id']} by admin {admin['_id']}")
    return success_response("Payment refunded successfully", {
        "refund": {
            "id": refund.get("id"),
            "amount": (refund.get("amount") or 0) / 100,
            "currency": refund.get("currency"),
            "status": refund.get("status"),
        },
        "subscription": await billing_db.attach_plan(db, await billing_db.get_subscription(db, sub["_id"])),
    })
