"""
Stripe gateway
Thin async wrappers around the blocking stripe SDK.
"""

import logging
from typing import Optional

import stripe
from fastapi.concurrency import run_in_threadpool

from gnosis.billing.payment_utils import PaymentGatewayError, to_minor_units
from gnosis.core.config import (
    STRIPE_ENVIRONMENT,
    STRIPE_PUBLISHABLE_KEY,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
)

logger = logging.getLogger(__name__)

stripe.api_key = STRIPE_SECRET_KEY


def stripe_configured() -> bool:
    return bool(STRIPE_SECRET_KEY) and bool(STRIPE_PUBLISHABLE_KEY)


def stripe_environment() -> dict:
    return {
        "environment": STRIPE_ENVIRONMENT,
        "hasSecretKey": bool(STRIPE_SECRET_KEY),
        "hasPublishableKey": bool(STRIPE_PUBLISHABLE_KEY),
        "publishableKey": STRIPE_PUBLISHABLE_KEY or None,
    }


def _require_config() -> None:
    if not STRIPE_SECRET_KEY:
        raise PaymentGatewayError("Stripe secret key not found. Please set STRIPE_SECRET_KEY")
    if not STRIPE_PUBLISHABLE_KEY:
        raise PaymentGatewayError("Stripe publishable key not found. Please set STRIPE_PUBLISHABLE_KEY")


async def _call(fn, **kwargs):
    _require_config()
    try:
        return await run_in_threadpool(fn, **kwargs)
    except stripe.StripeError as e:
        logger.error(f"❌ Stripe error in {fn.__qualname__}: {e}")
        raise PaymentGatewayError(e.user_message or str(e)) from e


async def create_customer(email: str, name: str, metadata: dict):
    return await _call(stripe.Customer.create, email=email, name=name, metadata=metadata)


async def create_payment_intent(amount: float, currency: str = "usd", metadata: Optional[dict] = None):
    return await _call(
        stripe.PaymentIntent.create,
        amount=to_minor_units(amount),
        currency=currency.lower(),
        automatic_payment_methods={"enabled": True},
        metadata=metadata or {},
    )


async def retrieve_payment_intent(payment_intent_id: str):
    return await _call(
        stripe.PaymentIntent.retrieve,
        id=payment_intent_id,
        expand=["payment_method", "latest_charge"],
    )


async def refund_payment(charge_id: str, amount: Optional[float] = None, reason: str = "requested_by_customer"):
    params = {"charge": charge_id, "reason": reason}
    if amount:
        params["amount"] = to_minor_units(amount)
    return await _call(stripe.Refund.create, **params)


def construct_event(payload: bytes, signature: str):
    """Verified webhook event; raises ValueError or stripe.SignatureVerificationError"""
    return stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
