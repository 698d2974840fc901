from gnosis.billing import payment_utils


def test_validate_payment_amount():
    assert payment_utils.validate_payment_amount(10) is None
    assert payment_utils.validate_payment_amount("10") == "Amount must be a valid number"
    assert payment_utils.validate_payment_amount(True) == "Amount must be a valid number"
    assert payment_utils.validate_payment_amount(0) == "Amount must be at least $0.01"
    assert payment_utils.validate_payment_amount(10001) == "Amount cannot exceed $10,000"


def test_validate_billing_info_collects_every_problem():
    errors = payment_utils.validate_billing_info({"firstName": "A", "lastName": "", "email": "bad", "country": ""})
    assert errors == [
        "First name must be at least 2 characters long",
        "Last name must be at least 2 characters long",
        "Valid email address is required",
        "Country is required",
    ]
    assert payment_utils.validate_billing_info(None) == ["Billing information is required"]


def test_validate_billing_info_accepts_complete_details():
    info = {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com", "country": "UK"}
    assert payment_utils.validate_billing_info(info) == []
    assert payment_utils.has_required_billing_fields(info)


def test_to_minor_units_rounds_to_cents():
    assert payment_utils.to_minor_units(19.99) == 1999
    assert payment_utils.to_minor_units(0.1 + 0.2) == 30


def test_calculate_total():
    assert payment_utils.calculate_total(100, tax=8.5, discount=10) == 98.5


def test_generated_ids_are_prefixed_and_unique():
    first, second = payment_utils.generate_payment_id(), payment_utils.generate_payment_id()
    assert first.startswith("pay_")
    assert first != second
    assert payment_utils.generate_order_id().startswith("order_")


def test_payment_metadata_stringifies_values():
    meta = payment_utils.payment_metadata(1, 2, None, planName="Pro")
    assert meta["userId"] == "1"
    assert meta["planId"] == "2"
    assert meta["subscriptionId"] == ""
    assert meta["planName"] == "Pro"


def test_extract_paypal_payment_details():
    order = {
        "id": "ORDER-1",
        "status": "COMPLETED",
        "payer": {"payer_id": "P1", "email_address": "buyer@example.com"},
        "purchase_units": [{
            "amount": {"value": "9.99", "currency_code": "USD"},
            "payments": {"captures": [{"id": "CAP-1"}]},
        }],
    }
    details = payment_utils.extract_paypal_payment_details(order)
    assert details["orderId"] == "ORDER-1"
    assert details["captureId"] == "CAP-1"
    assert details["transactionId"] == "CAP-1"
    assert details["payerEmail"] == "buyer@example.com"
    assert details["amount"] == "9.99"


def test_extract_paypal_payment_details_without_captures():
    details = payment_utils.extract_paypal_payment_details({"id": "ORDER-2", "status": "CREATED"})
    assert details["captureId"] is None
    assert details["currency"] is None
