# gnosis/core/email.py

"""
Transactional email through the Brevo HTTP API
OTP codes for password reset and email verification
"""

import logging
from typing import Any, Dict

import httpx

from gnosis.core.config import BREVO_API_KEY, BREVO_SENDER_EMAIL, BREVO_SENDER_NAME

logger = logging.getLogger(__name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"
BREVO_TIMEOUT_SECONDS = 10.0


def email_configured() -> bool:
    return bool(BREVO_API_KEY and BREVO_SENDER_EMAIL)


async def send_brevo_transactional_email(*, api_key: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    if not api_key:
        raise RuntimeError("Brevo API key is missing")
    headers = {
        "accept": "application/json",
        "api-key": api_key,
        "content-type": "application/json",
    }
    async with httpx.AsyncClient(timeout=BREVO_TIMEOUT_SECONDS) as client:
        response = await client.post(BREVO_URL, headers=headers, json=payload)
        response.raise_for_status()
        if not response.text:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}


def _otp_html(first_name: str, code: str, purpose: str, minutes: int) -> str:
    return (
        f"<p>Hello {first_name or 'there'},</p>"
        f"<p>Your Gnosis {purpose} code is:</p>"
        f"<h2 style=\"letter-spacing:6px\">{code}</h2>"
        f"<p>This code expires in {minutes} minutes. If you did not request it, you can ignore this email.</p>"
        "<p>- The Gnosis Team</p>"
    )


async def send_otp_email(email: str, first_name: str, code: str, purpose: str, minutes: int) -> bool:
    """Returns False when email delivery is not configured"""
    if not email_configured():
        logger.warning(f"⚠️  OTP email to {email} skipped: Brevo not configured")
        return False

    payload = {
        "sender": {"email": BREVO_SENDER_EMAIL, "name": BREVO_SENDER_NAME},
        "to": [{"email": email, "name": first_name or email}],
        "subject": f"Your Gnosis {purpose} code",
        "htmlContent": _otp_html(first_name, code, purpose, minutes),
    }
    await send_brevo_transactional_email(api_key=BREVO_API_KEY, payload=payload)
    logger.info(f"✅ {purpose} code sent to {email}")
    return True
