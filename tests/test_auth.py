from datetime import datetime, timedelta

import pytest

from gnosis.auth import router as auth_router
from tests.conftest import PASSWORD, make_user, run

REGISTRATION = {
    "email": "New.Student@Example.com",
    "password": "Passw0rd",
    "confirmPassword": "Passw0rd",
    "role": "student",
    "firstName": "New",
    "lastName": "Student",
}


def test_register_creates_user_and_returns_token(client, db):
    response = client.post("/api/auth/register", json=REGISTRATION)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["token"]
    assert body["data"]["user"]["email"] == "new.student@example.com"
    assert "password" not in body["data"]["user"]

    stored = run(db.users.find_one({"email": "new.student@example.com"}))
    assert stored["password"] != "Passw0rd"


def test_register_rejects_mismatched_confirmation(client):
    response = client.post("/api/auth/register", json={**REGISTRATION, "confirmPassword": "Other123"})
    assert response.status_code == 400
    assert response.json()["message"] == "Password confirmation does not match"


def test_register_rejects_duplicate_email(client, student):
    response = client.post("/api/auth/register", json={**REGISTRATION, "email": student["email"]})
    assert response.status_code == 400
    assert response.json()["message"] == "User already exists with this email address"


def test_register_weak_password_is_a_validation_error(client):
    response = client.post("/api/auth/register", json={**REGISTRATION, "password": "weakpass", "confirmPassword": "weakpass"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"


def test_login(client, student):
    response = client.post("/api/auth/login", json={"email": student["email"], "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["_id"] == str(student["_id"])


def test_login_wrong_password(client, student):
    response = client.post("/api/auth/login", json={"email": student["email"], "password": "Wrong1234"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"


def test_login_unknown_user(client):
    response = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
    assert response.status_code == 404


def test_me_requires_authentication(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Access denied. No token provided."}


def test_me_returns_public_user(client, as_student):
    response = client.get("/api/auth/me")
    assert response.status_code == 200
    assert "password" not in response.json()["data"]["user"]


# ==================== OTP FLOWS ====================

@pytest.fixture
def sent_codes(monkeypatch):
    codes = []

    async def fake_send(email, first_name, code, purpose, minutes):
        codes.append(code)
        return True

    monkeypatch.setattr(auth_router, "send_otp_email", fake_send)
    return codes


def _wrong_code(code: str) -> str:
    return "1000" if code != "1000" else "1001"


def test_reset_password_requires_verified_code(client, student, sent_codes):
    reset = {"email": student["email"], "newPassword": "Hijack123", "confirmPassword": "Hijack123"}
    response = client.post("/api/auth/reset-password", json=reset)
    assert response.status_code == 400
    assert response.json()["message"] == "Please verify the code sent to your email before resetting your password"

    # a code that was only issued, not verified, does not unlock the reset either
    client.post("/api/auth/forgot-password", json={"email": student["email"]})
    assert client.post("/api/auth/reset-password", json=reset).status_code == 400

    login = client.post("/api/auth/login", json={"email": student["email"], "password": "Hijack123"})
    assert login.status_code == 401


def test_password_reset_flow(client, db, student, sent_codes):
    sent = client.post("/api/auth/forgot-password", json={"email": student["email"]})
    assert sent.status_code == 200
    code = sent_codes[-1]
    assert 1000 <= int(code) <= 9999

    verified = client.post("/api/auth/verify-otp", json={"email": student["email"], "code": code})
    assert verified.json()["data"]["verified"] is True

    reset = {"email": student["email"], "newPassword": "Fresh123", "confirmPassword": "Fresh123"}
    response = client.post("/api/auth/reset-password", json=reset)
    assert response.status_code == 200
    assert client.post("/api/auth/login", json={"email": student["email"], "password": "Fresh123"}).status_code == 200

    # the verification is consumed by the reset
    assert "resetPasswordOTP" not in run(db.users.find_one({"_id": student["_id"]}))
    assert client.post("/api/auth/reset-password", json=reset).status_code == 400


def test_expired_reset_window_is_rejected(client, db, student, sent_codes):
    client.post("/api/auth/forgot-password", json={"email": student["email"]})
    client.post("/api/auth/verify-otp", json={"email": student["email"], "code": sent_codes[-1]})
    run(db.users.update_one(
        {"_id": student["_id"]},
        {"$set": {"resetPasswordOTP.expiresAt": datetime.utcnow() - timedelta(minutes=1)}},
    ))
    reset = {"email": student["email"], "newPassword": "Fresh123", "confirmPassword": "Fresh123"}
    assert client.post("/api/auth/reset-password", json=reset).status_code == 400


def test_wrong_codes_count_towards_the_attempt_limit(client, db, student, sent_codes):
    client.post("/api/auth/forgot-password", json={"email": student["email"]})
    code = sent_codes[-1]
    wrong = {"email": student["email"], "code": _wrong_code(code)}

    first = client.post("/api/auth/verify-otp", json=wrong)
    assert first.status_code == 400
    assert first.json()["message"] == "Invalid verification code. Please try again."
    assert run(db.users.find_one({"_id": student["_id"]}))["resetPasswordOTP"]["attempts"] == 1

    client.post("/api/auth/verify-otp", json=wrong)
    client.post("/api/auth/verify-otp", json=wrong)

    blocked = client.post("/api/auth/verify-otp", json={"email": student["email"], "code": code})
    assert blocked.status_code == 400
    assert blocked.json()["message"] == "Too many failed attempts. Please request a new verification code."


def test_expired_code_is_cleared(client, db, student, sent_codes):
    client.post("/api/auth/forgot-password", json={"email": student["email"]})
    run(db.users.update_one(
        {"_id": student["_id"]},
        {"$set": {"resetPasswordOTP.expiresAt": datetime.utcnow() - timedelta(seconds=1)}},
    ))
    response = client.post("/api/auth/verify-otp", json={"email": student["email"], "code": sent_codes[-1]})
    assert response.status_code == 400
    assert response.json()["message"] == "Verification code has expired. Please request a new one."
    assert "resetPasswordOTP" not in run(db.users.find_one({"_id": student["_id"]}))


def test_verify_otp_rejects_malformed_code(client, student):
    response = client.post("/api/auth/verify-otp", json={"email": student["email"], "code": "12a4"})
    assert response.status_code == 400
    assert response.json()["message"] == "Validation failed"


def test_forgot_password_for_social_account(client, db, sent_codes):
    make_user(db, "social@gnosis.test", password=None, provider="google")
    response = client.post("/api/auth/forgot-password", json={"email": "social@gnosis.test"})
    assert response.status_code == 400
    assert response.json()["message"] == "This account uses Google sign-in. Please use Google to reset your password."
    assert sent_codes == []


def test_email_verification(client, db, sent_codes):
    user = make_user(db, "unverified@gnosis.test", isEmailVerified=False)

    wrong_first = client.post("/api/auth/verify-email", json={"email": user["email"], "code": "1234"})
    assert wrong_first.json()["message"] == "No verification code found. Please request a new one."

    client.post("/api/auth/send-email-verification", json={"email": user["email"]})
    response = client.post("/api/auth/verify-email", json={"email": user["email"], "code": sent_codes[-1]})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["isEmailVerified"] is True

    stored = run(db.users.find_one({"_id": user["_id"]}))
    assert stored["isEmailVerified"] is True
    assert "emailVerificationOTP" not in stored

    again = client.post("/api/auth/send-email-verification", json={"email": user["email"]})
    assert again.json()["message"] == "Email is already verified"
