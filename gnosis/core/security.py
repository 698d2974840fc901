# gnosis/core/security.py

"""
Credential handling
✅ bcrypt password hashing (12 rounds)
✅ Gnosis JWT issue / decode (python-jose)
✅ Firebase Admin ID-token verification
✅ Apple identity-token verification against Apple's JWKS
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
import firebase_admin
import httpx
from firebase_admin import credentials, auth as firebase_auth
from jose import jwt, JWTError
from starlette.concurrency import run_in_threadpool

from gnosis.core.config import (
    APPLE_CLIENT_ID,
    APPLE_ISSUER,
    APPLE_KEYS_URL,
    FirebaseConfig,
    JWT_ALGORITHM,
    JWT_EXPIRE_DAYS,
    JWT_SECRET,
    firebase_configured,
)

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12


class AuthError(Exception):
    """Raised when an external identity token cannot be verified"""


# ==================== PASSWORDS ====================

def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ==================== GNOSIS JWT ====================

def create_access_token(user_id: str) -> str:
    now = datetime.utcnow()
    payload = {
        "userId": str(user_id),
        "iat": now,
        "exp": now + timedelta(days=JWT_EXPIRE_DAYS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and validate a Gnosis JWT. Raises JWTError when invalid or expired."""
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])


def token_expiry(token: str) -> Optional[datetime]:
    """Expiry of a still-valid Gnosis JWT, or None when it does not decode"""
    try:
        payload = decode_access_token(token)
    except JWTError:
        return None
    exp = payload.get("exp")
    if exp is None:
        return None
    return datetime.utcfromtimestamp(exp)


# ==================== FIREBASE ====================

def init_firebase() -> bool:
    """
    Initialize Firebase Admin SDK at app startup.

    Returns False (with a warning) when no Firebase project is configured;
    raises RuntimeError when it is configured but incomplete.
    """
    if not firebase_configured():
        logger.warning("⚠️  FIREBASE_PROJECT_ID not set - Firebase token verification disabled")
        return False

    config = FirebaseConfig()
    try:
        if not firebase_admin._apps:
            cred = credentials.Certificate({
                "type": "service_account",
                "project_id": config.FIREBASE_PROJECT_ID,
                "private_key_id": config.FIREBASE_PRIVATE_KEY_ID,
                "private_key": config.FIREBASE_PRIVATE_KEY,
                "client_email": config.FIREBASE_CLIENT_EMAIL,
                "client_id": config.FIREBASE_CLIENT_ID,
                "token_uri": "https://oauth2.googleapis.com/token",
            })
            firebase_admin.initialize_app(cred)
        logger.info("✅ Firebase Admin SDK initialized")
        return True
    except Exception as e:
        raise RuntimeError(f"❌ FATAL: Firebase initialization failed: {e}")


def firebase_ready() -> bool:
    return bool(firebase_admin._apps)


async def verify_firebase_token(id_token: str) -> dict:
    """Verify a Firebase ID token and return its decoded claims"""
    if not firebase_ready():
        raise AuthError("Firebase is not initialized")
    try:
        return await run_in_threadpool(firebase_auth.verify_id_token, id_token)
    except (firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError, ValueError) as e:
        raise AuthError(str(e))


# ==================== APPLE ====================

async def fetch_apple_keys() -> list[dict]:
    async with httpx.AsyncClient() as client:
        resp = await client.get(APPLE_KEYS_URL, timeout=10.0)
        resp.raise_for_status()
        return resp.json().get("keys", [])


async def verify_apple_token(id_token: str) -> dict:
    """Verify an Apple identity token (RS256) and return its claims"""
    try:
        header = jwt.get_unverified_header(id_token)
    except JWTError as e:
        raise AuthError(f"Malformed Apple token: {e}")

    keys = await fetch_apple_keys()
    key = next((k for k in keys if k.get("kid") == header.get("kid")), None)
    if key is None:
        raise AuthError("Apple signing key not found")

    try:
        return jwt.decode(
            id_token,
            key,
            algorithms=["RS256"],
            audience=APPLE_CLIENT_ID,
            issuer=APPLE_ISSUER,
            options={"verify_at_hash": False},
        )
    except JWTError as e:
        raise AuthError(f"Invalid Apple token: {e}")
