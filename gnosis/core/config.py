# gnosis/core/config.py

"""
Gnosis Service Configuration
Environment-driven settings for database, auth and third-party providers
"""

import os
from typing import Optional

# Server
PORT = int(os.getenv("PORT", "8081"))
NODE_ENV = os.getenv("NODE_ENV", "development")
API_VERSION = "1.0.0"

# MongoDB
MONGO_URL = os.getenv("MONGODB_URI", os.getenv("MONGO_URL", "mongodb://localhost:27017"))
DB_NAME = os.getenv("DB_NAME", "gnosis")

# JWT
JWT_SECRET = os.getenv("JWT_SECRET", "fallback-secret")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "7"))

# Frontend links (invitations, PayPal redirects)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Apple sign-in
APPLE_CLIENT_ID = os.getenv("APPLE_CLIENT_ID", "")
APPLE_KEYS_URL = "https://appleid.apple.com/auth/keys"
APPLE_ISSUER = "https://appleid.apple.com"

# Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_ENVIRONMENT = os.getenv("STRIPE_ENVIRONMENT", "test")

# PayPal
PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "")
PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_CLIENT_SECRET", "")
PAYPAL_ENVIRONMENT = os.getenv("PAYPAL_ENVIRONMENT", "sandbox")
PAYPAL_RETURN_URL = os.getenv("PAYPAL_RETURN_URL", "http://localhost:3000/payment/success")
PAYPAL_CANCEL_URL = os.getenv("PAYPAL_CANCEL_URL", "http://localhost:3000/payment/cancel")
PAYPAL_WEBHOOK_ID = os.getenv("PAYPAL_WEBHOOK_ID", "")

# AI providers
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")

# Cloudinary
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
MAX_UPLOAD_BYTES = 5 * 1024 * 1024

# Brevo transactional email
BREVO_API_KEY = os.getenv("BREVO_API_KEY", "")
BREVO_SENDER_EMAIL = os.getenv("BREVO_SENDER_EMAIL", "")
BREVO_SENDER_NAME = os.getenv("BREVO_SENDER_NAME", "Gnosis")

# Learning rules
MAX_LEVELS = 10
MAX_QUESTIONS_PER_LEVEL = 10
POINTS_PER_CORRECT_ANSWER = 10

# OTP rules
OTP_RESET_MINUTES = 3
OTP_VERIFY_EMAIL_MINUTES = 5
OTP_MAX_ATTEMPTS = 3
PASSWORD_RESET_WINDOW_MINUTES = 10


class FirebaseConfig:
    """Validated Firebase service-account settings - fails fast on missing vars"""

    def __init__(self):
        self.FIREBASE_PROJECT_ID = self._require_env("FIREBASE_PROJECT_ID")
        self.FIREBASE_PRIVATE_KEY = self._require_env("FIREBASE_PRIVATE_KEY").replace('\\n', '\n')
        self.FIREBASE_CLIENT_EMAIL = self._require_env("FIREBASE_CLIENT_EMAIL")
        self.FIREBASE_PRIVATE_KEY_ID = os.getenv("FIREBASE_PRIVATE_KEY_ID", "")
        self.FIREBASE_CLIENT_ID = os.getenv("FIREBASE_CLIENT_ID", "")

    @staticmethod
    def _require_env(key: str) -> str:
        """Get required environment variable or crash"""
        value = os.getenv(key)
        if not value:
            raise RuntimeError(f"❌ FATAL: Missing required environment variable: {key}")
        return value


def firebase_configured() -> bool:
    return bool(os.getenv("FIREBASE_PROJECT_ID"))


def paypal_base_url(environment: Optional[str] = None) -> str:
    env = (environment or PAYPAL_ENVIRONMENT).lower()
    if env in ("live", "production"):
        return "https://api-m.paypal.com"
    return "https://api-m.sandbox.paypal.com"
