from types import SimpleNamespace

import pytest

from gnosis.billing import stripe_gateway
from tests.conftest import run

PLAN = {"name": "Pro", "tagline": "Everything", "price": 19.99, "features": ["All branches", "AI tutor"]}
BILLING = {"firstName": "Sam", "lastName": "Student", "email": "student@gnosis.test", "country": "US"}


def _insert_plan(db, **fields) -> dict:
    plan = {"name": "Pro", "tagline": "Everything", "price": 19.99, "currency": "USD",
            "trialDays": 0, "features": ["All branches"], "isActive": True, **fields}
    plan["_id"] = run(db.plans.insert_one(plan)).inserted_id
    return plan


# ==================== PLANS ====================

def test_admin_creates_and_updates_plan(client, as_admin):
    created = client.post("/api/plans/", json=PLAN)
    assert created.status_code == 201
    plan = created.json()["data"]["plan"]
    assert plan["billingCycle"] == "monthly"

    duplicate = client.post("/api/plans/", json=PLAN)
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "Plan with this name already exists"

    updated = client.put(f"/api/plans/{plan['_id']}", json={"price": 24.99})
    assert updated.json()["data"]["plan"]["price"] == 24.99


def test_plan_requires_core_fields(client, as_admin):
    response = client.post("/api/plans/", json={"name": "Bare"})
    assert response.status_code == 400
    assert response.json()["message"] == "Name, tagline, price, and features are required"


def test_students_cannot_manage_plans(client, as_student):
    assert client.post("/api/plans/", json=PLAN).status_code == 403


def test_public_plan_listing_hides_inactive(client, db):
    _insert_plan(db)
    _insert_plan(db, name="Legacy", isActive=False)
    plans = client.get("/api/plans/").json()["data"]["plans"]
    assert [p["name"] for p in plans] == ["Pro"]


def test_unknown_plan(client):
    assert client.get("/api/plans/64b000000000000000000000").status_code == 404
    assert client.get("/api/plans/not-an-id").status_code == 400


# ==================== PLAN SELECTION ====================

def test_free_plan_starts_trial(client, db, as_student):
    plan = _insert_plan(db, name="Free", price=0, trialDays=7)
    response = client.post("/api/plan-selection/select-plan", json={
        "planId": str(plan["_id"]), "billingInfo": {"firstName": "Sam", "lastName": "Student"},
    })
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["isFreePlan"] is True
    assert data["message"] == "Your 7-day free trial has started!"

    stored = run(db.user_subscriptions.find_one({"userId": as_student["_id"]}))
    assert stored["status"] == "trial"
    assert stored["paymentMethod"] == "free"
    assert stored["endDate"] == stored["trialEndDate"]

    current = client.get("/api/plan-selection/current-subscription").json()["data"]
    assert current["hasSubscription"] is True
    assert current["subscription"]["plan"]["name"] == "Free"


def test_free_trial_requires_names(client, db, as_student):
    plan = _insert_plan(db, name="Free", price=0, trialDays=7)
    response = client.post("/api/plan-selection/select-plan", json={"planId": str(plan["_id"])})
    assert response.status_code == 400
    assert response.json()["message"] == "First name and last name are required for free trial"


def test_paid_plan_returns_payment_options(client, db, as_student):
    plan = _insert_plan(db)
    response = client.post("/api/plan-selection/select-plan", json={"planId": str(plan["_id"]), "billingInfo": BILLING})
    data = response.json()["data"]
    assert response.json()["message"] == "Plan selected, payment required"
    assert set(data["paymentOptions"]) == {"stripe", "paypal"}
    assert data["nextSteps"]["endpoints"]["stripe"] == "/api/stripe/create-payment-intent"


def test_second_subscription_is_blocked(client, db, as_student):
    plan = _insert_plan(db)
    run(db.user_subscriptions.insert_one({
        "userId": as_student["_id"], "planId": plan["_id"], "status": "active", "paymentMethod": "stripe",
    }))
    response = client.post("/api/plan-selection/select-plan", json={"planId": str(plan["_id"]), "billingInfo": BILLING})
    assert response.status_code == 400
    assert response.json()["message"] == "You already have an active subscription"


# ==================== STRIPE ====================

@pytest.fixture
def fake_stripe(monkeypatch):
    calls = {}

    async def create_customer(email, name, metadata):
        calls["customer"] = (email, name)
        return SimpleNamespace(id="cus_123")

    async def create_payment_intent(amount, currency="usd", metadata=None):
        calls["intent"] = (amount, currency)
        return SimpleNamespace(id="pi_123", client_secret="pi_123_secret")

    async def retrieve_payment_intent(payment_intent_id):
        return {
            "id": payment_intent_id,
            "status": "succeeded",
            "amount": 1999,
            "currency": "usd",
            "latest_charge": "ch_123",
            "payment_method": {"id": "pm_1", "card": {"last4": "4242", "brand": "visa", "exp_month": 12, "exp_year": 2030}},
        }

    monkeypatch.setattr(stripe_gateway, "create_customer", create_customer)
    monkeypatch.setattr(stripe_gateway, "create_payment_intent", create_payment_intent)
    monkeypatch.setattr(stripe_gateway, "retrieve_payment_intent", retrieve_payment_intent)
    return calls


def test_stripe_checkout_then_confirm(client, db, as_student, fake_stripe):
    plan = _insert_plan(db)
    created = client.post("/api/stripe/create-payment-intent", json={"planId": str(plan["_id"]), "billingInfo": BILLING})
    assert created.status_code == 200
    data = created.json()["data"]
    assert data["clientSecret"] == "pi_123_secret"
    assert fake_stripe["intent"] == (19.99, "USD")

    pending = run(db.user_subscriptions.find_one({"stripeDetails.paymentIntentId": "pi_123"}))
    assert pending["status"] == "pending"

    confirmed = client.post("/api/stripe/confirm-payment/pi_123")
    assert confirmed.status_code == 200
    details = confirmed.json()["data"]["paymentDetails"]
    assert details["amount"] == 19.99
    assert details["paymentMethod"]["last4"] == "4242"

    active = run(db.user_subscriptions.find_one({"_id": pending["_id"]}))
    assert active["status"] == "active"
    assert active["stripeDetails"]["chargeId"] == "ch_123"

    again = client.post("/api/stripe/confirm-payment/pi_123")
    assert again.status_code == 404


def test_stripe_checkout_validates_billing(client, db, as_student, fake_stripe):
    plan = _insert_plan(db)
    response = client.post("/api/stripe/create-payment-intent", json={
        "planId": str(plan["_id"]), "billingInfo": {**BILLING, "email": "nope"},
    })
    assert response.status_code == 400
    assert response.json()["message"] == "Billing validation failed: Valid email address is required"
    assert "intent" not in fake_stripe


def test_trial_plan_skips_card_payment(client, db, as_student, fake_stripe):
    plan = _insert_plan(db, trialDays=14)
    response = client.post("/api/stripe/create-payment-intent", json={"planId": str(plan["_id"]), "billingInfo": BILLING})
    assert response.json()["message"] == "Free subscription created successfully"
    assert "intent" not in fake_stripe


def test_cancel_pending_payment(client, db, as_student, fake_stripe):
    plan = _insert_plan(db)
    client.post("/api/stripe/create-payment-intent", json={"planId": str(plan["_id"]), "billingInfo": BILLING})
    response = client.post("/api/stripe/cancel-payment/pi_123")
    assert response.json()["data"]["status"] == "cancelled"
    stored = run(db.user_subscriptions.find_one({"stripeDetails.paymentIntentId": "pi_123"}))
    assert stored["stripeDetails"]["paymentStatus"] == "cancelled"


def test_webhook_requires_signature(client):
    response = client.post("/api/stripe/webhook", content=b"{}")
    assert response.status_code == 400
    assert response.json()["message"] == "Missing stripe-signature header"


def test_stripe_info_is_public(client):
    data = client.get("/api/stripe/info").json()["data"]
    assert set(data) == {"environment", "hasSecretKey", "hasPublishableKey", "publishableKey"}
