# marketplace/services/paypal.py
"""
PayPal REST glue: OAuth2 client-credentials, Orders v2 create/capture and
capture refunds. Request bodies are built here, responses are handed back
as parsed JSON.
"""
from __future__ import annotations

import base64
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request

from flask import current_app

from marketplace.services.cart import (
    cart_total_cents,
    cents_to_value,
    format_quantity,
    item_product,
    unit_price_cents,
)

log = logging.getLogger(__name__)

ORDER_DESCRIPTION = "SKN Bridge Trade Purchase"


class PayPalError(Exception):
    """Failure talking to PayPal. `status` is the upstream HTTP status, if any."""

    def __init__(self, message: str, status: int | None = None, details=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details


def redact(value: str | None) -> str:
    if not value:
        return "NOT FOUND"
    return f"{value[:8]}...{value[-4:]}"


def build_order_payload(
    items,
    currency: str = "USD",
    brand_name: str = "SKN Bridge Trade",
    return_url: str | None = None,
    cancel_url: str | None = None,
    reference_id: str | None = None,
) -> dict:
    """Orders v2 CAPTURE payload for validated cart items."""
    total = cents_to_value(cart_total_cents(items))
    currency = (currency or "USD").upper()

    payload_items = []
    for item in items:
        variant = item.get("variant") or {}
        product = item_product(item)
        payload_items.append({
            "name": product.get("title") or "Item",
            "description": variant.get("title") or "",
            "sku": str(variant.get("id") or ""),
            "unit_amount": {
                "currency_code": currency,
                "value": cents_to_value(unit_price_cents(item)),
            },
            "quantity": format_quantity(item.get("quantity")),
            "category": "PHYSICAL_GOODS",
        })

    application_context = {
        "brand_name": brand_name,
        "shipping_preference": "GET_FROM_FILE",
        "user_action": "PAY_NOW",
    }
    if return_url:
        application_context["return_url"] = return_url
    if cancel_url:
        application_context["cancel_url"] = cancel_url

    return {
        "intent": "CAPTURE",
        "purchase_units": [
            {
                "reference_id": reference_id or f"order_{int(time.time() * 1000)}",
                "description": ORDER_DESCRIPTION,
                "amount": {
                    "currency_code": currency,
                    "value": total,
                    "breakdown": {
                        "item_total": {"currency_code": currency, "value": total},
                    },
                },
                "items": payload_items,
                "shipping_preference": "GET_FROM_FILE",
            }
        ],
        "application_context": application_context,
    }


class PayPalClient:
    def __init__(self, base_url: str, client_id: str | None, secret: str | None, timeout: int = 15):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.secret = secret
        self.timeout = timeout

    @classmethod
    def from_app(cls, app=None) -> "PayPalClient":
        cfg = (app or current_app).config
        return cls(
            base_url=cfg["PAYPAL_API_BASE"],
            client_id=cfg.get("PAYPAL_CLIENT_ID"),
            secret=cfg.get("PAYPAL_SECRET"),
            timeout=int(cfg.get("PAYPAL_TIMEOUT") or 15),
        )

    # --- transport ---------------------------------------------------------

    def _request(self, method: str, path: str, headers: dict, body: bytes | None = None) -> tuple[int, object]:
        """Returns (status, parsed body). Non-JSON bodies come back as {"raw": text}."""
        req = urllib.request.Request(self.base_url + path, data=body, method=method, headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                status = resp.status
                text = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            status = e.code
            text = e.read().decode("utf-8", errors="replace")
        except urllib.error.URLError as e:
            raise PayPalError("PayPal is unreachable", details=str(e.reason)) from e

        try:
            data = json.loads(text) if text else {}
        except ValueError:
            data = {"raw": text}
        return status, data

    def _authorized(self, method: str, path: str, payload=None, request_id: str | None = None):
        token = self.get_access_token()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        if request_id:
            headers["PayPal-Request-Id"] = request_id
        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        return self._request(method, path, headers, body)

    # --- API ---------------------------------------------------------------

    def get_access_token(self) -> str:
        log.info("Generating token for PayPal Client ID: %s", redact(self.client_id))
        auth = base64.b64encode(f"{self.client_id}:{self.secret}".encode("utf-8")).decode("ascii")
        status, data = self._request(
            "POST",
            "/v1/oauth2/token",
            {
                "Authorization": f"Basic {auth}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            urllib.parse.urlencode({"grant_type": "client_credentials"}).encode("ascii"),
        )

        if not 200 <= status < 300:
            said = data.get("error_description") if isinstance(data, dict) else None
            log.error("Failed to obtain PayPal token. Status: %s. PayPal says: %r", status, said or data)
            raise PayPalError(
                "Failed to obtain PayPal access token",
                details={"status": status, "body": data},
            )

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            log.error("PayPal token response missing access_token: %r", data)
            raise PayPalError("PayPal access token missing in response", details=data)
        return token

    def create_order(self, payload: dict) -> dict:
        status, data = self._authorized("POST", "/v2/checkout/orders", payload)
        if not 200 <= status < 300:
            log.error("PayPal create-order failed: status=%s body=%r", status, data)
            raise PayPalError(_upstream_message(data, "PayPal order creation failed"), status=status, details=data)
        log.info("PayPal create-order success, id: %s", data.get("id"))
        return data

    def capture_order(self, order_id: str) -> dict:
        path = f"/v2/checkout/orders/{urllib.parse.quote(str(order_id), safe='')}/capture"
        status, data = self._authorized(
            "POST", path, request_id=f"capture-{order_id}-{int(time.time() * 1000)}"
        )
        if not 200 <= status < 300:
            log.error("PayPal capture failed: status=%s body=%r", status, data)
            raise PayPalError(_upstream_message(data, "Payment capture failed"), status=status, details=data)
        log.info("PayPal capture success, order ID: %s", order_id)
        return data

    def refund_capture(self, capture_id: str, amount_cents=None, currency: str = "USD") -> dict:
        payload = {}
        if amount_cents is not None:
            payload["amount"] = {"value": cents_to_value(amount_cents), "currency_code": currency.upper()}
        path = f"/v2/payments/captures/{urllib.parse.quote(str(capture_id), safe='')}/refund"
        status, data = self._authorized(
            "POST", path, payload, request_id=f"refund-{capture_id}-{int(time.time() * 1000)}"
        )
        if not 200 <= status < 300:
            log.error("PayPal refund failed: status=%s body=%r", status, data)
            raise PayPalError(_upstream_message(data, "Refund failed"), status=status, details=data)
        log.info("PayPal refund successful: %s", data.get("id"))
        return data

    def _lookup(self, path: str, what: str) -> dict:
        status, data = self._authorized("GET", path)
        if not 200 <= status < 300:
            log.error("PayPal %s lookup failed: status=%s body=%r", what, status, data)
            raise PayPalError(_upstream_message(data, f"Failed to fetch PayPal {what}"), status=status, details=data)
        return data

    def get_order(self, order_id: str) -> dict:
        return self._lookup(f"/v2/checkout/orders/{urllib.parse.quote(str(order_id), safe='')}", "order")

    def get_capture(self, capture_id: str) -> dict:
        return self._lookup(f"/v2/payments/captures/{urllib.parse.quote(str(capture_id), safe='')}", "capture")

    def get_refund(self, refund_id: str) -> dict:
        return self._lookup(f"/v2/payments/refunds/{urllib.parse.quote(str(refund_id), safe='')}", "refund")


def _upstream_message(data, fallback: str):
    if isinstance(data, dict) and data.get("message"):
        return data["message"]
    return fallback


def extract_capture_id(capture_response) -> str | None:
    """First capture id of a captured order, if PayPal returned one."""
    try:
        units = capture_response.get("purchase_units") or []
        for unit in units:
            for capture in (unit.get("payments") or {}).get("captures") or []:
                if capture.get("id"):
                    return capture["id"]
    except AttributeError:
        return None
    return None
