from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    ONE_TIME = "one_time"


# ==================== PLAN MODELS ====================

class PlanCreate(BaseModel):
    name: Optional[str] = None
    tagline: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    currency: str = "USD"
    billingCycle: BillingCycle = BillingCycle.MONTHLY
    features: Optional[List[str]] = None
    trialDays: int = Field(0, ge=0)
    isPopular: bool = False
    sortOrder: int = 0


class PlanUpdate(BaseModel):
    name: Optional[str] = None
    tagline: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    billingCycle: Optional[BillingCycle] = None
    features: Optional[List[str]] = None
    trialDays: Optional[int] = Field(None, ge=0)
    isPopular: Optional[bool] = None
    isActive: Optional[bool] = None
    sortOrder: Optional[int] = None


# ==================== SUBSCRIPTION MODELS ====================

class BillingInfo(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    country: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postalCode: Optional[str] = None


class CardDetails(BaseModel):
    cardNumber: Optional[str] = None
    brand: Optional[str] = None
    expiryMonth: Optional[str] = None
    expiryYear: Optional[str] = None
    cardholderName: Optional[str] = None


class SubscriptionCreate(BaseModel):
    planId: str
    billingInfo: Optional[BillingInfo] = None
    paymentMethod: str = "card"
    cardDetails: Optional[CardDetails] = None
    promoCode: Optional[str] = None
    discountAmount: float = Field(0, ge=0)


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class PlanSelectRequest(BaseModel):
    planId: Optional[str] = None
    billingInfo: Optional[Dict[str, Any]] = None


class CheckoutRequest(BaseModel):
    planId: Optional[str] = None
    billingInfo: Optional[Dict[str, Any]] = None
    promoCode: Optional[str] = None
    discountAmount: float = Field(0, ge=0)


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    reason: Optional[str] = "requested_by_customer"
