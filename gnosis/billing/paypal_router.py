"""
PayPal Router
PayPal Orders checkout: create → approve (frontend) → capture
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from gnosis.billing import database as billing_db
from gnosis.billing import paypal_gateway as gateway
from gnosis.billing import subscription_rules as rules
from gnosis.billing.models import CheckoutRequest
from gnosis.billing.payment_utils import (
    PaymentGatewayError,
    extract_paypal_payment_details,
    generate_payment_id,
    validate_billing_info,
    validate_payment_amount,
)
from gnosis.core.database import get_db
from gnosis.core.dependencies import get_current_user
from gnosis.core.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["PayPal"])

SubStatus = rules.SubscriptionStatus


async def _pending_by_order(db: AsyncIOMotorDatabase, order_id: str, user_id=None) -> Optional[dict]:
    query = {"paypalDetails.orderId": order_id, "status": SubStatus.PENDING.value}
    if user_id is not None:
        query["userId"] = user_id
    return await db.user_subscriptions.find_one(query)


def _paypal_details(sub: dict, **changes) -> dict:
    return {**sub.get("paypalDetails", {}), **changes}


# ==================== CHECKOUT ====================

@router.post("/create-order")
async def create_order(
    data: CheckoutRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not data.planId:
        raise HTTPException(status_code=400, detail="Plan ID is required")

    billing_info = data.billingInfo
    if not billing_info or not billing_info.get("firstName") or not billing_info.get("lastName"):
        raise HTTPException(status_code=400, detail="Billing information (firstName, lastName) is required")
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
        return success_response("Free subscription created successfully", {
            "subscription": await billing_db.attach_plan(db, sub),
            "isFreePlan": True,
        })

    amount_error = validate_payment_amount(pricing["amountDueNow"])
    if amount_error:
        raise HTTPException(status_code=400, detail=amount_error)

    order_request = gateway.build_order_request(
        pricing["amountDueNow"],
        pricing["currency"],
        plan.get("name", "Gnosis"),
        custom_id=f"user_{user['_id']}_plan_{plan['_id']}",
        invoice_id=generate_payment_id(),
    )
    try:
        order = await gateway.create_order(order_request)
    except PaymentGatewayError as e:
        logger.error(f"❌ PayPal order creation failed for user {user['_id']}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create PayPal order")
    if not order.get("id"):
        raise HTTPException(status_code=500, detail="Failed to create PayPal order")

    sub = rules.build_subscription(
        user["_id"], plan, billing_info, rules.PaymentMethod.PAYPAL.value,
        status=SubStatus.PENDING.value, discount=data.discountAmount,
    )
    sub.update({
        "promoCode": data.promoCode,
        "discountAmount": data.discountAmount,
        "paypalDetails": {"orderId": order["id"], "paymentStatus": "pending"},
    })
    sub = await billing_db.insert_subscription(db, sub)
    logger.info(f"PayPal order {order['id']} created for user {user['_id']}")

    return success_response("PayPal order created successfully", {
        "orderId": order["id"],
        "approvalUrl": gateway.approval_url(order),
        "subscriptionId": sub["_id"],
        "amount": pricing["amountDueNow"],
        "currency": pricing["currency"],
        "plan": {"name": plan.get("name"), "features": plan.get("features", [])},
    })


@router.post("/capture/{order_id}")
async def capture_order(
    order_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await _pending_by_order(db, order_id, user["_id"])
    if not sub:
        raise HTTPException(status_code=404, detail="Subscription not found or already processed")

    try:
        capture = await gateway.capture_order(order_id)
    except PaymentGatewayError as e:
        logger.error(f"❌ PayPal capture failed for order {order_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to capture PayPal payment")

    details = extract_paypal_payment_details(capture)
    if details["status"] != "COMPLETED":
        raise HTTPException(status_code=400, detail="Payment capture failed")

    sub = await billing_db.activate_subscription(db, sub, extra={
        "paypalDetails": _paypal_details(
            sub,
            captureId=details["captureId"],
            payerId=details["payerId"],
            payerEmail=details["payerEmail"],
            transactionId=details["transactionId"],
            paymentStatus="completed",
        ),
        "lastPaymentDate": datetime.utcnow(),
    })
    logger.info(f"✅ PayPal order {order_id} captured, subscription {sub['_id']} activated")

    return success_response("Payment captured and subscription activated successfully", {
        "subscription": await billing_db.attach_plan(db, sub),
        "paymentDetails": {
            "orderId": details["orderId"],
            "transactionId": details["transactionId"],
            "amount": details["amount"],
            "currency": details["currency"],
            "status": details["status"],
        },
    })


@router.get("/order/{order_id}")
async def get_order(
    order_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await db.user_subscriptions.find_one({"paypalDetails.orderId": order_id, "userId": user["_id"]})
    if not sub:
        raise HTTPException(status_code=404, detail="Order not found")

    try:
        order = await gateway.get_order(order_id)
    except PaymentGatewayError:
        raise HTTPException(status_code=500, detail="Failed to get order details from PayPal")

    return success_response("Order details retrieved successfully", {
        "order": order,
        "subscription": await billing_db.attach_plan(db, sub),
    })


@router.post("/cancel/{order_id}")
async def cancel_order(
    order_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    sub = await _pending_by_order(db, order_id, user["_id"])
    if not sub:
        raise HTTPException(status_code=404, detail="Order not found or already processed")

    await billing_db.cancel_subscription_doc(
        db, sub["_id"], "User cancelled PayPal order",
        extra={"paypalDetails": _paypal_details(sub, paymentStatus="cancelled")},
    )
    return success_response("Order cancelled successfully", {
        "orderId": order_id,
        "subscriptionId": sub["_id"],
        "status": SubStatus.CANCELLED.value,
    })


# ==================== WEBHOOK ====================

def _related_order_id(resource: dict) -> Optional[str]:
    return ((resource.get("supplementary_data") or {}).get("related_ids") or {}).get("order_id")


async def handle_capture_completed(db: AsyncIOMotorDatabase, resource: dict) -> None:
    order_id = _related_order_id(resource)
    if not order_id:
        logger.error("❌ No order ID found in payment capture webhook")
        return
    sub = await _pending_by_order(db, order_id)
    if sub:
        await billing_db.activate_subscription(db, sub, extra={
            "paypalDetails": _paypal_details(sub, paymentStatus="completed", captureId=resource.get("id")),
            "lastPaymentDate": datetime.utcnow(),
        })
        logger.info(f"✅ Subscription activated via webhook: {sub['_id']}")


async def handle_capture_denied(db: AsyncIOMotorDatabase, resource: dict) -> None:
    order_id = _related_order_id(resource)
    if not order_id:
        logger.error("❌ No order ID found in payment capture denied webhook")
        return
    sub = await _pending_by_order(db, order_id)
    if sub:
        await billing_db.cancel_subscription_doc(
            db, sub["_id"], "Payment capture denied by PayPal",
            extra={"paypalDetails": _paypal_details(sub, paymentStatus="failed")},
        )
        logger.warning(f"⚠️ Subscription cancelled due to payment denial: {sub['_id']}")


async def handle_capture_refunded(db: AsyncIOMotorDatabase, resource: dict) -> None:
    sub = await db.user_subscriptions.find_one({"paypalDetails.captureId": resource.get("id")})
    if sub:
        await billing_db.cancel_subscription_doc(
            db, sub["_id"], "Payment refunded",
            extra={"paypalDetails": _paypal_details(sub, paymentStatus="refunded")},
        )
        logger.info(f"Subscription cancelled due to refund: {sub['_id']}")


WEBHOOK_HANDLERS = {
    "PAYMENT.CAPTURE.COMPLETED": handle_capture_completed,
    "PAYMENT.CAPTURE.DENIED": handle_capture_denied,
    "PAYMENT.CAPTURE.REFUNDED": handle_capture_refunded,
}


@router.post("/webhook")
async def paypal_webhook(request: Request, db: AsyncIOMotorDatabase = Depends(get_db)):
    """PayPal webhook - NO AUTH (PayPal signature verification)"""
    missing = gateway.missing_webhook_headers(request.headers)
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing PayPal signature headers: {', '.join(missing)}")
    if not gateway.webhook_configured():
        logger.error("❌ PAYPAL_WEBHOOK_ID not configured")
        raise HTTPException(status_code=500, detail="Webhook ID not configured")

    body = await request.json()
    try:
        verified = await gateway.verify_webhook_signature(request.headers, body)
    except PaymentGatewayError as e:
        logger.error(f"❌ PayPal webhook verification unavailable: {e}")
        raise HTTPException(status_code=500, detail="Failed to verify webhook signature")
    if not verified:
        logger.error("❌ PayPal webhook signature verification failed")
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = body.get("event_type")
    logger.info(f"PayPal webhook received: {event_type}")
    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler:
        await handler(db, body.get("resource") or {})
    else:
        logger.info(f"Unhandled webhook event: {event_type}")
    return {"status": "success"}


# ==================== INFO & HISTORY ====================

@router.get("/info")
async def paypal_info():
    return success_response("PayPal environment info retrieved", gateway.paypal_environment())


@router.get("/subscriptions")
async def my_paypal_subscriptions(user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    subs = await billing_db.list_user_subscriptions(db, user["_id"], rules.PaymentMethod.PAYPAL.value)
    return success_response("PayPal subscriptions retrieved successfully", {"subscriptions": subs})
