"""
Authentication Router
✅ Email/password registration and login (bcrypt + JWT)
✅ Google (Firebase) and Apple sign-in
✅ Logout with token blacklisting
✅ OTP flows: password reset, email verification
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from gnosis.auth import database as users_db
from gnosis.auth.models import (
    AppleSignInRequest,
    EmailRequest,
    IdTokenRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    VerifyOtpRequest,
)
from gnosis.core.config import (
    OTP_MAX_ATTEMPTS,
    OTP_RESET_MINUTES,
    OTP_VERIFY_EMAIL_MINUTES,
    PASSWORD_RESET_WINDOW_MINUTES,
)
from gnosis.core.database import get_db
from gnosis.core.dependencies import get_bearer_token, get_current_user
from gnosis.core.email import send_otp_email
from gnosis.core.responses import success_response
from gnosis.core.security import (
    AuthError,
    create_access_token,
    hash_password,
    token_expiry,
    verify_apple_token,
    verify_firebase_token,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Authentication"])

NO_USER_MSG = "No user found with this email address"
SOCIAL_ACCOUNT_MSG = "This account uses Google sign-in. Please use Google to reset your password."


# ==================== HELPER FUNCTIONS ====================

def auth_payload(user: dict) -> dict:
    return {"user": users_db.public_user(user), "token": create_access_token(str(user["_id"]))}


async def _issue_otp(db: AsyncIOMotorDatabase, user: dict, field: str, minutes: int, purpose: str) -> None:
    otp = users_db.new_otp(minutes)
    await users_db.update_user(db, user["_id"], {field: otp})
    await send_otp_email(user["email"], user.get("firstName", ""), otp["code"], purpose, minutes)


async def _consume_otp(
    db: AsyncIOMotorDatabase,
    user: dict,
    field: str,
    code: str,
    verified_minutes: Optional[int] = None,
) -> None:
    """
    Check a submitted code against the stored OTP.
    Expired codes are cleared; wrong codes count towards the attempt limit.
    With `verified_minutes` the OTP is replaced by a verified marker that
    stays valid for that long instead of being cleared.
    """
    otp = user.get(field)
    if not otp or not otp.get("code"):
        raise HTTPException(status_code=400, detail="No verification code found. Please request a new one.")

    if datetime.utcnow() > otp["expiresAt"]:
        await db.users.update_one({"_id": user["_id"]}, {"$unset": {field: ""}})
        raise HTTPException(status_code=400, detail="Verification code has expired. Please request a new one.")

    if otp.get("attempts", 0) >= OTP_MAX_ATTEMPTS:
        raise HTTPException(status_code=400, detail="Too many failed attempts. Please request a new verification code.")

    if otp["code"] != code:
        await db.users.update_one({"_id": user["_id"]}, {"$inc": {f"{field}.attempts": 1}})
        raise HTTPException(status_code=400, detail="Invalid verification code. Please try again.")

    if verified_minutes:
        marker = {"verified": True, "expiresAt": datetime.utcnow() + timedelta(minutes=verified_minutes)}
        await db.users.update_one({"_id": user["_id"]}, {"$set": {field: marker}})
        return
    await db.users.update_one({"_id": user["_id"]}, {"$unset": {field: ""}})


async def _user_for_password_reset(db: AsyncIOMotorDatabase, email: str) -> dict:
    user = await users_db.get_user_by_email(db, email)
    if not user:
        raise HTTPException(status_code=404, detail=NO_USER_MSG)
    if not user.get("password"):
        raise HTTPException(status_code=400, detail=SOCIAL_ACCOUNT_MSG)
    return user


# ==================== REGISTRATION & LOGIN ====================

@router.post("/register")
async def register(data: RegisterRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    try:
        if data.password != data.confirmPassword:
            raise HTTPException(status_code=400, detail="Password confirmation does not match")

        if await users_db.get_user_by_email(db, data.email):
            raise HTTPException(status_code=400, detail="User already exists with this email address")

        user = await users_db.create_user(db, {
            "email": data.email,
            "password": hash_password(data.password),
            "firstName": data.firstName,
            "lastName": data.lastName,
            "role": data.role,
            "provider": "local",
        })
        logger.info(f"✅ Registered {user['email']} ({user['role']})")
        return success_response("User registered successfully", auth_payload(user), 201)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Registration failed")
        raise HTTPException(status_code=500, detail=f"Internal server error during registration: {e}")


@router.post("/login")
async def login(data: LoginRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    user = await users_db.get_user_by_email(db, data.email)
    if not user:
        raise HTTPException(status_code=404, detail="User Not Found")

    if not verify_password(data.password, user.get("password")):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    await users_db.touch_last_login(db, user)
    return success_response("Login successful", auth_payload(user))


@router.get("/me")
async def me(user: dict = Depends(get_current_user)):
    return success_response("User retrieved successfully", {"user": users_db.public_user(user)})


# ==================== SOCIAL SIGN-IN ====================

@router.post("/google-signin")
async def google_signin(data: IdTokenRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    if not data.idToken:
        raise HTTPException(status_code=400, detail="ID token is required")

    try:
        decoded = await verify_firebase_token(data.idToken)
    except AuthError as e:
        logger.warning(f"⚠️  Google sign-in rejected: {e}")
        raise HTTPException(status_code=401, detail="Invalid Google ID token")

    user = await users_db.find_or_create_firebase_user(db, decoded)
    return success_response("Google sign-in successful", auth_payload(user))


@router.post("/apple-signin")
async def apple_signin(data: AppleSignInRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    if not data.idToken:
        raise HTTPException(status_code=400, detail="Apple ID token is required")

    try:
        claims = await verify_apple_token(data.idToken)
    except AuthError as e:
        logger.warning(f"⚠️  Apple sign-in rejected: {e}")
        raise HTTPException(status_code=401, detail="Invalid Apple ID token")

    apple_id = claims.get("sub")
    email = users_db.normalize_email(claims.get("email") or (data.user.email if data.user else "") or "")

    user = await db.users.find_one({"appleId": apple_id})
    if not user and email:
        user = await users_db.get_user_by_email(db, email)

    if user:
        link = {"lastLogin": datetime.utcnow()}
        if not user.get("appleId"):
            link["appleId"] = apple_id
        await users_db.update_user(db, user["_id"], link)
        user.update(link)
    else:
        name = data.user.name if data.user and data.user.name else None
        user = await users_db.create_user(db, {
            "email": email or f"{apple_id}@privaterelay.appleid.com",
            "firstName": (name.firstName if name and name.firstName else "User"),
            "lastName": (name.lastName if name and name.lastName else ""),
            "provider": "apple",
            "appleId": apple_id,
            "isEmailVerified": True,
        })

    return success_response("Apple sign-in successful", auth_payload(user))


@router.post("/logout")
async def logout(
    user: dict = Depends(get_current_user),
    token: Optional[str] = Depends(get_bearer_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    expires_at = token_expiry(token) if token else None
    if expires_at:
        await users_db.blacklist_token(db, token, user["_id"], expires_at)
    return success_response("Logged out successfully")


# ==================== PASSWORD RESET ====================

@router.post("/forgot-password")
async def forgot_password(data: EmailRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    user = await _user_for_password_reset(db, data.email)
    await _issue_otp(db, user, "resetPasswordOTP", OTP_RESET_MINUTES, "password reset")
    return success_response("Verification code sent to your email address", {"email": user["email"]})


@router.post("/resend-otp")
async def resend_otp(data: EmailRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    user = await _user_for_password_reset(db, data.email)
    await _issue_otp(db, user, "resetPasswordOTP", OTP_RESET_MINUTES, "password reset")
    return success_response("New verification code sent to your email address", {"email": user["email"]})


@router.post("/verify-otp")
async def verify_otp(data: VerifyOtpRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    user = await users_db.get_user_by_email(db, data.email)
    if not user:
        raise HTTPException(status_code=404, detail=NO_USER_MSG)

    await _consume_otp(db, user, "resetPasswordOTP", data.code, verified_minutes=PASSWORD_RESET_WINDOW_MINUTES)
    return success_response("Verification code verified successfully", {"email": user["email"], "verified": True})


@router.post("/reset-password")
async def reset_password(data: ResetPasswordRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    if data.newPassword != data.confirmPassword:
        raise HTTPException(status_code=400, detail="Password confirmation does not match")

    user = await users_db.get_user_by_email(db, data.email)
    if not user:
        raise HTTPException(status_code=404, detail=NO_USER_MSG)

    # only a code confirmed through /verify-otp unlocks the reset, and only once
    marker = user.get("resetPasswordOTP") or {}
    if not marker.get("verified") or datetime.utcnow() > marker["expiresAt"]:
        raise HTTPException(
            status_code=400,
            detail="Please verify the code sent to your email before resetting your password",
        )

    await users_db.update_user(db, user["_id"], {"password": hash_password(data.newPassword)})
    await db.users.update_one({"_id": user["_id"]}, {"$unset": {"resetPasswordOTP": ""}})
    return success_response("Password reset successfully. You can now login with your new password.")


# ==================== EMAIL VERIFICATION ====================

@router.post("/send-email-verification")
async def send_email_verification(data: EmailRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    user = await users_db.get_user_by_email(db, data.email)
    if not user:
        raise HTTPException(status_code=404, detail=NO_USER_MSG)
    if user.get("isEmailVerified"):
        raise HTTPException(status_code=400, detail="Email is already verified")

    await _issue_otp(db, user, "emailVerificationOTP", OTP_VERIFY_EMAIL_MINUTES, "email verification")
    return success_response("Email verification code sent to your email address", {"email": user["email"]})


@router.post("/verify-email")
async def verify_email(data: VerifyOtpRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    user = await users_db.get_user_by_email(db, data.email)
    if not user:
        raise HTTPException(status_code=404, detail=NO_USER_MSG)
    if user.get("isEmailVerified"):
        raise HTTPException(status_code=400, detail="Email is already verified")

    await _consume_otp(db, user, "emailVerificationOTP", data.code)
    await users_db.update_user(db, user["_id"], {"isEmailVerified": True})
    user["isEmailVerified"] = True
    return success_response("Email verified successfully", {"user": users_db.public_user(user)})
