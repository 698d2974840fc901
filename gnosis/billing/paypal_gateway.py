"""
PayPal gateway
Orders v2 REST API over httpx with a client-credentials OAuth token
"""

import logging
from typing import Optional

import httpx

from gnosis.billing.payment_utils import PaymentGatewayError
from gnosis.core.config import (
    PAYPAL_CANCEL_URL,
    PAYPAL_CLIENT_ID,
    PAYPAL_CLIENT_SECRET,
    PAYPAL_ENVIRONMENT,
    PAYPAL_RETURN_URL,
    PAYPAL_WEBHOOK_ID,
    paypal_base_url,
)

logger = logging.getLogger(__name__)

PAYPAL_TIMEOUT_SECONDS = 15.0


def paypal_configured() -> bool:
    return bool(PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET)


def paypal_environment() -> dict:
    return {
        "environment": PAYPAL_ENVIRONMENT,
        "clientId": PAYPAL_CLIENT_ID or None,
        "hasCredentials": paypal_configured(),
    }


def build_order_request(amount: float, currency: str, plan_name: str, custom_id: str, invoice_id: str) -> dict:
    return {
        "intent": "CAPTURE",
        "purchase_units": [{
            "amount": {"currency_code": currency, "value": f"{amount:.2f}"},
            "description": f"Subscription for {plan_name}",
            "custom_id": custom_id,
            "invoice_id": invoice_id,
            "soft_descriptor": "GNOSIS",
        }],
        "application_context": {
            "brand_name": "Gnosis",
            "landing_page": "NO_PREFERENCE",
            "user_action": "PAY_NOW",
            "return_url": PAYPAL_RETURN_URL,
            "cancel_url": PAYPAL_CANCEL_URL,
        },
    }


def approval_url(order: dict) -> Optional[str]:
    for link in order.get("links", []):
        if link.get("rel") in ("approve", "payer-action"):
            return link.get("href")
    return None


async def _access_token(client: httpx.AsyncClient) -> str:
    if not paypal_configured():
        raise PaymentGatewayError("PayPal credentials not found. Please set PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET")
    response = await client.post(
        "/v1/oauth2/token",
        data={"grant_type": "client_credentials"},
        auth=(PAYPAL_CLIENT_ID, PAYPAL_CLIENT_SECRET),
    )
    response.raise_for_status()
    return response.json()["access_token"]


async def _request(method: str, path: str, json: Optional[dict] = None) -> dict:
    try:
        async with httpx.AsyncClient(base_url=paypal_base_url(), timeout=PAYPAL_TIMEOUT_SECONDS) as client:
            token = await _access_token(client)
            response = await client.request(
                method,
                path,
                json=json,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "Prefer": "return=representation",
                },
            )
            response.raise_for_status()
            return response.json() if response.content else {}
    except httpx.HTTPStatusError as e:
        logger.error(f"❌ PayPal {method} {path} failed: {e.response.status_code} {e.response.text}")
        raise PaymentGatewayError(f"PayPal API error ({e.response.status_code})") from e
    except httpx.HTTPError as e:
        logger.error(f"❌ PayPal {method} {path} unreachable: {e}")
        raise PaymentGatewayError("PayPal API unreachable") from e


async def create_order(order_request: dict) -> dict:
    return await _request("POST", "/v2/checkout/orders", json=order_request)


async def capture_order(order_id: str) -> dict:
    return await _request("POST", f"/v2/checkout/orders/{order_id}/capture", json={})


async def get_order(order_id: str) -> dict:
    return await _request("GET", f"/v2/checkout/orders/{order_id}")


# ==================== WEBHOOK VERIFICATION ====================

WEBHOOK_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


def webhook_configured() -> bool:
    return bool(PAYPAL_WEBHOOK_ID)


def missing_webhook_headers(headers) -> list[str]:
    return [name for name in WEBHOOK_HEADERS.values() if not headers.get(name)]


async def verify_webhook_signature(headers, event: dict) -> bool:
    """Ask PayPal whether the event was signed for our webhook"""
    payload = {field: headers.get(name) for field, name in WEBHOOK_HEADERS.items()}
    payload.update({"webhook_id": PAYPAL_WEBHOOK_ID, "webhook_event": event})
    result = await _request("POST", "/v1/notifications/verify-webhook-signature", json=payload)
    return result.get("verification_status") == "SUCCESS"
