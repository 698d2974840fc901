from datetime import datetime, timedelta

from bson import ObjectId

from gnosis.billing import subscription_rules as rules

NOW = datetime(2025, 1, 1, 12, 0, 0)


def _sub(**fields):
    base = {"status": "active", "isTrialActive": False, "endDate": NOW + timedelta(days=30)}
    base.update(fields)
    return base


def test_days_remaining_rounds_up_and_uses_trial_end_when_trial_active():
    sub = _sub(isTrialActive=True, trialEndDate=NOW + timedelta(days=2, hours=1))
    assert rules.days_remaining(sub, NOW) == 3


def test_days_remaining_never_negative():
    sub = _sub(endDate=NOW - timedelta(days=5))
    assert rules.days_remaining(sub, NOW) == 0


def test_is_active_requires_active_status_and_future_end():
    assert rules.is_active(_sub(), NOW)
    assert not rules.is_active(_sub(status="cancelled"), NOW)
    assert not rules.is_active(_sub(endDate=NOW - timedelta(seconds=1)), NOW)


def test_trial_flags():
    trial = _sub(status="trial", isTrialActive=True, trialEndDate=NOW + timedelta(days=1))
    assert rules.is_trial_currently_active(trial, NOW)
    assert not rules.is_trial_expired(trial, NOW)

    later = NOW + timedelta(days=2)
    assert not rules.is_trial_currently_active(trial, later)
    assert rules.is_trial_expired(trial, later)


def test_has_access_handles_missing_subscription():
    assert not rules.has_access(None, NOW)
    assert rules.has_access(_sub(), NOW)


def test_with_computed_fields_does_not_mutate_input():
    sub = _sub()
    out = rules.with_computed_fields(sub, NOW)
    assert out["daysRemaining"] == 30
    assert out["isExpired"] is False
    assert "daysRemaining" not in sub


def test_sanitize_card_details_keeps_only_last_four_digits():
    card = {"cardNumber": "4242 4242 4242 1234", "cvv": "123", "brand": "visa"}
    clean = rules.sanitize_card_details(card)
    assert clean == {"brand": "visa", "last4": "1234"}


def test_compute_pricing_trial_plan_charges_nothing_now():
    pricing = rules.compute_pricing({"price": 20, "trialDays": 7}, discount=5)
    assert pricing["amountDueNow"] == 0
    assert pricing["nextBillingAmount"] == 15
    assert pricing["currency"] == "USD"


def test_compute_dates_without_trial_is_active_for_thirty_days():
    dates = rules.compute_dates({"trialDays": 0}, NOW)
    assert dates["status"] == "active"
    assert dates["trialEndDate"] is None
    assert dates["endDate"] == NOW + timedelta(days=30)
    assert dates["nextBillingDate"] == dates["endDate"]


def test_compute_dates_with_trial():
    dates = rules.compute_dates({"trialDays": 14}, NOW)
    assert dates["status"] == "trial"
    assert dates["isTrialActive"] is True
    assert dates["nextBillingDate"] == NOW + timedelta(days=14)


def test_build_subscription_allows_status_override():
    plan = {"_id": ObjectId(), "price": 10, "trialDays": 0}
    doc = rules.build_subscription("u1", plan, {"firstName": "A"}, "stripe", status="pending", now=NOW)
    assert doc["status"] == "pending"
    assert doc["planId"] == plan["_id"]
    assert doc["pricing"]["amountDueNow"] == 10


def test_upgrade_only_from_free_trial_to_different_paid_plan():
    free_plan_id = ObjectId()
    existing = {"paymentMethod": "free", "planId": free_plan_id}
    assert rules.is_upgrade_from_free_trial(existing, {"_id": ObjectId(), "price": 9.99})
    assert not rules.is_upgrade_from_free_trial(existing, {"_id": free_plan_id, "price": 9.99})
    assert not rules.is_upgrade_from_free_trial(existing, {"_id": ObjectId(), "price": 0})
    assert not rules.is_upgrade_from_free_trial(
        {"paymentMethod": "stripe", "planId": free_plan_id}, {"_id": ObjectId(), "price": 9.99}
    )


def test_cancellation_update():
    update = rules.cancellation_update("Too expensive", NOW)
    assert update["status"] == "cancelled"
    assert update["cancellationReason"] == "Too expensive"
    assert update["autoRenew"] is False
