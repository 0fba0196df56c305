"""
Razorpay integration.

Only a few gateway features are used: creating a gateway-side order that the
client completes in its checkout widget, and verifying the signature the
gateway hands back once the payment succeeds. The gateway order is read back
to check that the amount paid matches the order being placed.
"""
import hashlib
import hmac
import logging
from typing import Dict, Optional

import requests
from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    pass


class RazorpayGateway:
    def __init__(self, key_id: str, key_secret: str, base_url: str = "https://api.razorpay.com/v1", timeout: int = 10):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _call(self, send, path: str, **kwargs) -> dict:
        try:
            res = send(f"{self.base_url}{path}", auth=(self.key_id, self.key_secret), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("Razorpay request %s failed: %s", path, e)
            raise GatewayError("Payment gateway unreachable") from e

        if not 200 <= res.status_code < 300:
            try:
                message = res.json().get("error", {}).get("description")
            except ValueError:
                message = None
            logger.error("Razorpay rejected %s (%s): %s", path, res.status_code, message or res.text[:200])
            raise GatewayError(message or "Payment gateway error")

        data = res.json()
        if not data.get("id"):
            raise GatewayError("Payment gateway returned no order id")
        return data

    def create_order(self, amount: int, currency: str, receipt: str, notes: Optional[Dict[str, str]] = None) -> dict:
        payload = {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes or {}}
        return self._call(requests.post, "/orders", json=payload)

    def fetch_order(self, order_id: str) -> dict:
        return self._call(requests.get, f"/orders/{order_id}")

    def signature_for(self, order_id: str, payment_id: str) -> str:
        message = f"{order_id}|{payment_id}".encode("utf-8")
        return hmac.new(self.key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not order_id or not payment_id or not signature:
            return False
        return hmac.compare_digest(self.signature_for(order_id, payment_id), signature)


def get_gateway(request: Request) -> RazorpayGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Payment gateway not configured")
    return gateway


def to_minor_units(amount: float) -> int:
    """Order totals are kept in rupees; the gateway counts paise."""
    return int(round(amount * 100))
