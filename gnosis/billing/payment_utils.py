"""
Payment helpers shared by the Stripe and PayPal flows
"""

import secrets
import time
from datetime import datetime
from typing import Any, Optional

from gnosis.auth.models import is_valid_email

MIN_PAYMENT_AMOUNT = 0.01
MAX_PAYMENT_AMOUNT = 10000


class PaymentGatewayError(Exception):
    """A payment provider call failed"""


def generate_payment_id() -> str:
    return f"pay_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def generate_order_id() -> str:
    return f"order_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def calculate_total(amount: float, tax: float = 0, discount: float = 0) -> float:
    return round(amount - discount + tax, 2)


def validate_payment_amount(amount: Any, min_amount: float = MIN_PAYMENT_AMOUNT) -> Optional[str]:
    """Error message for an unacceptable charge amount, None when valid"""
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return "Amount must be a valid number"
    if amount < min_amount:
        return f"Amount must be at least ${min_amount}"
    if amount > MAX_PAYMENT_AMOUNT:
        return "Amount cannot exceed $10,000"
    return None


def validate_billing_info(billing_info: Optional[dict]) -> list[str]:
    if not billing_info or not isinstance(billing_info, dict):
        return ["Billing information is required"]

    errors = []
    if len((billing_info.get("firstName") or "").strip()) < 2:
        errors.append("First name must be at least 2 characters long")
    if len((billing_info.get("lastName") or "").strip()) < 2:
        errors.append("Last name must be at least 2 characters long")
    if not is_valid_email(billing_info.get("email")):
        errors.append("Valid email address is required")
    if len((billing_info.get("country") or "").strip()) < 2:
        errors.append("Country is required")
    return errors


def has_required_billing_fields(billing_info: Optional[dict]) -> bool:
    return bool(
        billing_info
        and billing_info.get("firstName")
        and billing_info.get("lastName")
        and billing_info.get("country")
    )


def to_minor_units(amount: float) -> int:
    """Dollars to cents for Stripe"""
    return int(round(amount * 100))


def payment_metadata(user_id, plan_id, subscription_id=None, **extra) -> dict:
    return {
        "userId": str(user_id),
        "planId": str(plan_id),
        "subscriptionId": str(subscription_id) if subscription_id else "",
        "timestamp": datetime.utcnow().isoformat(),
        **{k: str(v) for k, v in extra.items()},
    }


def extract_paypal_payment_details(order: dict) -> dict:
    purchase_unit = (order.get("purchase_units") or [{}])[0]
    payer = order.get("payer") or {}
    captures = (purchase_unit.get("payments") or {}).get("captures") or []
    capture_id = captures[0].get("id") if captures else None
    amount = purchase_unit.get("amount") or {}
    return {
        "orderId": order.get("id"),
        "status": order.get("status"),
        "amount": amount.get("value"),
        "currency": amount.get("currency_code"),
        "payerId": payer.get("payer_id"),
        "payerEmail": payer.get("email_address"),
        "captureId": capture_id,
        "transactionId": capture_id,
    }
