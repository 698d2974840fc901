# gnosis/billing/subscription_rules.py

"""
Subscription lifecycle rules

Pure functions over user_subscriptions documents:
- computed fields (daysRemaining, isExpired, isTrialExpired)
- activity checks used by the subscription gate
- pricing / date computation for new subscriptions
- the free-trial → paid-plan upgrade rule
"""

import math
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

BILLING_PERIOD_DAYS = 30
EXPIRING_SOON_DAYS = 7


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIAL = "trial"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    PAUSED = "paused"
    PENDING = "pending"


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    FREE = "free"
    CARD = "card"


LIVE_STATUSES = [SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIAL.value]


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.utcnow()


# ==================== COMPUTED FIELDS ====================

def days_remaining(sub: dict, now: Optional[datetime] = None) -> int:
    now = _now(now)
    target = sub.get("trialEndDate") if sub.get("isTrialActive") else sub.get("endDate")
    if not target:
        return 0
    seconds = (target - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def is_expired(sub: dict, now: Optional[datetime] = None) -> bool:
    end = sub.get("endDate")
    return bool(end) and _now(now) > end


def is_trial_expired(sub: dict, now: Optional[datetime] = None) -> bool:
    trial_end = sub.get("trialEndDate")
    return bool(sub.get("isTrialActive")) and bool(trial_end) and _now(now) > trial_end


def is_active(sub: dict, now: Optional[datetime] = None) -> bool:
    end = sub.get("endDate")
    return sub.get("status") == SubscriptionStatus.ACTIVE.value and bool(end) and _now(now) <= end


def is_trial_currently_active(sub: dict, now: Optional[datetime] = None) -> bool:
    trial_end = sub.get("trialEndDate")
    return (
        sub.get("status") == SubscriptionStatus.TRIAL.value
        and bool(sub.get("isTrialActive"))
        and bool(trial_end)
        and _now(now) <= trial_end
    )


def has_access(sub: Optional[dict], now: Optional[datetime] = None) -> bool:
    if not sub:
        return False
    return is_active(sub, now) or is_trial_currently_active(sub, now)


def with_computed_fields(sub: dict, now: Optional[datetime] = None) -> dict:
    """Copy of the document with the virtual fields the API exposes"""
    out = dict(sub)
    out["daysRemaining"] = days_remaining(sub, now)
    out["isExpired"] = is_expired(sub, now)
    out["isTrialExpired"] = is_trial_expired(sub, now)
    return out


def trial_status(sub: dict, now: Optional[datetime] = None) -> dict:
    return {
        "isTrialActive": bool(sub.get("isTrialActive")),
        "isTrialCurrentlyActive": is_trial_currently_active(sub, now),
        "isTrialExpired": is_trial_expired(sub, now),
        "trialEndDate": sub.get("trialEndDate"),
        "daysRemaining": days_remaining(sub, now),
    }


# ==================== CARD DETAILS ====================

def card_last4(card_number: Optional[str]) -> Optional[str]:
    """Only the last four digits of a card number are ever stored"""
    if not card_number:
        return None
    digits = "".join(ch for ch in str(card_number) if ch.isdigit())
    return digits[-4:] if digits else None


def sanitize_card_details(card: Optional[dict]) -> Optional[dict]:
    if not card:
        return None
    out = {k: v for k, v in card.items() if k not in ("cardNumber", "number", "cvv", "cvc")}
    last4 = card_last4(card.get("cardNumber") or card.get("number")) or card.get("last4")
    if last4:
        out["last4"] = last4
    return out


# ==================== PRICING & DATES ====================

def compute_pricing(plan: dict, discount: float = 0) -> dict:
    subtotal = float(plan.get("price", 0))
    discount = float(discount or 0)
    trial_days = int(plan.get("trialDays") or 0)
    net = max(subtotal - discount, 0)
    return {
        "subtotal": subtotal,
        "discount": discount,
        "amountDueNow": 0 if trial_days > 0 else net,
        "nextBillingAmount": net,
        "currency": plan.get("currency", "USD"),
    }


def compute_dates(plan: dict, now: Optional[datetime] = None) -> dict:
    now = _now(now)
    trial_days = int(plan.get("trialDays") or 0)
    end_date = now + timedelta(days=BILLING_PERIOD_DAYS)
    trial_end = now + timedelta(days=trial_days) if trial_days > 0 else None
    return {
        "startDate": now,
        "endDate": end_date,
        "trialEndDate": trial_end,
        "isTrialActive": trial_days > 0,
        "nextBillingDate": trial_end or end_date,
        "status": SubscriptionStatus.TRIAL.value if trial_days > 0 else SubscriptionStatus.ACTIVE.value,
    }


def build_subscription(
    user_id,
    plan: dict,
    billing_info: Optional[dict],
    payment_method: str,
    status: Optional[str] = None,
    now: Optional[datetime] = None,
    discount: float = 0,
) -> dict:
    """New user_subscriptions document for a plan; status defaults to trial/active"""
    now = _now(now)
    dates = compute_dates(plan, now)
    doc = {
        "userId": user_id,
        "planId": plan["_id"],
        "billingInfo": billing_info or {},
        "paymentMethod": payment_method,
        "pricing": compute_pricing(plan, discount),
        "autoRenew": True,
        "createdAt": now,
        "updatedAt": now,
        **dates,
    }
    if status:
        doc["status"] = status
    return doc


def activation_update(plan: dict, now: Optional[datetime] = None) -> dict:
    """$set payload that turns a pending (paid) subscription into trial/active"""
    dates = compute_dates(plan, now)
    dates["updatedAt"] = _now(now)
    return dates


def trial_days_for(plan: dict) -> int:
    return int(plan.get("trialDays") or 0)


def is_free_plan(plan: dict) -> bool:
    return float(plan.get("price", 0)) <= 0


# ==================== UPGRADE RULE ====================

def is_upgrade_from_free_trial(existing: dict, new_plan: dict) -> bool:
    """
    A live subscription only gives way to a new one when it is a free trial
    and the new plan is a different, paid plan.
    """
    return (
        existing.get("paymentMethod") == PaymentMethod.FREE.value
        and str(existing.get("planId")) != str(new_plan.get("_id"))
        and float(new_plan.get("price", 0)) > 0
    )


def cancellation_update(reason: str, now: Optional[datetime] = None) -> dict:
    now = _now(now)
    return {
        "status": SubscriptionStatus.CANCELLED.value,
        "isTrialActive": False,
        "autoRenew": False,
        "cancelledAt": now,
        "cancellationReason": reason,
        "updatedAt": now,
    }


def expiry_update(now: Optional[datetime] = None) -> dict:
    return {
        "status": SubscriptionStatus.EXPIRED.value,
        "isTrialActive": False,
        "updatedAt": _now(now),
    }
