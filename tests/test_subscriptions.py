from datetime import datetime, timedelta

from tests.conftest import run

BILLING = {"firstName": "Sam", "lastName": "Student", "country": "US"}


def _plan(db, **fields) -> dict:
    plan = {"name": "Pro", "tagline": "Everything", "price": 19.99, "currency": "USD",
            "trialDays": 0, "features": ["All branches"], "isActive": True, **fields}
    plan["_id"] = run(db.plans.insert_one(plan)).inserted_id
    return plan


def _subscription(db, user, plan, **fields) -> dict:
    now = datetime.utcnow()
    sub = {
        "userId": user["_id"],
        "planId": plan["_id"],
        "status": "active",
        "paymentMethod": "stripe",
        "isTrialActive": False,
        "startDate": now,
        "endDate": now + timedelta(days=30),
        "createdAt": now,
        **fields,
    }
    sub["_id"] = run(db.user_subscriptions.insert_one(sub)).inserted_id
    return sub


def test_create_subscription(client, db, as_student):
    plan = _plan(db)
    response = client.post("/api/subscriptions/", json={
        "planId": str(plan["_id"]),
        "billingInfo": BILLING,
        "cardDetails": {"cardNumber": "4242 4242 4242 4242", "brand": "visa"},
    })
    assert response.status_code == 201
    sub = response.json()["data"]["subscription"]
    assert sub["status"] == "active"
    assert sub["pricing"]["amountDueNow"] == 19.99
    assert sub["cardDetails"] == {"brand": "visa", "last4": "4242"}
    assert sub["plan"]["name"] == "Pro"

    mine = client.get("/api/subscriptions/my-subscription").json()["data"]["subscription"]
    assert mine["_id"] == sub["_id"]


def test_create_subscription_requires_billing_info(client, db, as_student):
    plan = _plan(db)
    response = client.post("/api/subscriptions/", json={"planId": str(plan["_id"]), "billingInfo": {"firstName": "Sam"}})
    assert response.status_code == 400
    assert response.json()["message"] == "Billing information (firstName, lastName, country) is required"


def test_trial_plan_starts_in_trial(client, db, as_student):
    plan = _plan(db, trialDays=7)
    sub = client.post("/api/subscriptions/", json={"planId": str(plan["_id"]), "billingInfo": BILLING}).json()["data"]["subscription"]
    assert sub["status"] == "trial"
    assert sub["isTrialActive"] is True
    assert sub["pricing"]["amountDueNow"] == 0


def test_free_trial_is_cancelled_by_paid_upgrade(client, db, as_student):
    free = _plan(db, name="Free", price=0, trialDays=7)
    paid = _plan(db, name="Pro")
    trial = _subscription(db, as_student, free, status="trial", paymentMethod="free", isTrialActive=True)

    response = client.post("/api/subscriptions/", json={"planId": str(paid["_id"]), "billingInfo": BILLING})
    assert response.status_code == 201

    old = run(db.user_subscriptions.find_one({"_id": trial["_id"]}))
    assert old["status"] == "cancelled"
    assert old["cancellationReason"] == "Upgraded to paid plan"


def test_paid_subscription_blocks_another(client, db, as_student):
    plan = _plan(db)
    _subscription(db, as_student, plan)
    response = client.post("/api/subscriptions/", json={"planId": str(plan["_id"]), "billingInfo": BILLING})
    assert response.status_code == 400
    assert response.json()["message"] == "User already has an active subscription"


def test_cancel_and_renew(client, db, as_student):
    plan = _plan(db)
    sub = _subscription(db, as_student, plan)

    cancelled = client.put(f"/api/subscriptions/{sub['_id']}/cancel", json={"reason": "Too busy"})
    assert cancelled.json()["data"]["subscription"]["status"] == "cancelled"
    assert run(db.user_subscriptions.find_one({"_id": sub["_id"]}))["cancellationReason"] == "Too busy"

    not_expired = client.put(f"/api/subscriptions/{sub['_id']}/renew")
    assert not_expired.status_code == 400
    assert not_expired.json()["message"] == "Subscription is not expired"

    run(db.user_subscriptions.update_one({"_id": sub["_id"]}, {"$set": {"status": "expired"}}))
    renewed = client.put(f"/api/subscriptions/{sub['_id']}/renew")
    assert renewed.status_code == 200
    assert renewed.json()["data"]["subscription"]["status"] == "active"


def test_other_users_subscription_is_not_found(client, db, admin, as_student):
    plan = _plan(db)
    sub = _subscription(db, admin, plan)
    assert client.put(f"/api/subscriptions/{sub['_id']}/cancel").status_code == 404
    assert client.get(f"/api/subscriptions/{sub['_id']}").status_code == 403


def test_analytics_requires_admin(client, auth, db, admin, student):
    plan = _plan(db)
    _subscription(db, student, plan, endDate=datetime.utcnow() + timedelta(days=3))

    auth["user"] = student
    assert client.get("/api/subscriptions/analytics").status_code == 403

    auth["user"] = admin
    analytics = client.get("/api/subscriptions/analytics").json()["data"]["analytics"]
    assert analytics["activeSubscriptions"] == 1
    assert len(analytics["expiringSoon"]) == 1


# ==================== SUBSCRIPTION GATE ====================

def test_expired_trial_is_closed_and_access_denied(client, db, as_student):
    plan = _plan(db, name="Free", price=0, trialDays=7)
    past = datetime.utcnow() - timedelta(days=1)
    trial = _subscription(
        db, as_student, plan,
        status="trial", paymentMethod="free", isTrialActive=True, trialEndDate=past, endDate=past,
    )

    response = client.get("/api/questions/filtered")
    assert response.status_code == 403
    assert response.json() == {
        "success": False,
        "message": "Active subscription required",
        "requiresSubscription": True,
        "redirectTo": "/choose-plan",
    }
    stored = run(db.user_subscriptions.find_one({"_id": trial["_id"]}))
    assert stored["status"] == "expired"
    assert stored["isTrialActive"] is False


def test_live_subscription_passes_the_gate(client, db, as_student):
    _subscription(db, as_student, _plan(db))
    response = client.get("/api/questions/filtered")
    assert response.status_code == 200


def test_admin_bypasses_the_gate(client, as_admin):
    assert client.get("/api/questions/filtered").status_code == 200
