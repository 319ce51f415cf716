"""
HTTP clients for the Razorpay and Stripe APIs plus their signature checks.

Both clients are thin async wrappers over httpx.  A custom `transport`
may be injected (tests use `httpx.MockTransport`).  Any transport error
or non-2xx response is raised as `PaymentGatewayError` (HTTP 502).
"""

from __future__ import annotations

import hashlib
import hmac
import time
from typing import Any

import httpx

from app.core.config import settings
from app.core.errors import PaymentGatewayError
from app.core.logging import get_logger

logger = get_logger(__name__)


def to_minor_units(amount: float) -> int:
    """Rupees/dollars to paise/cents."""
    return int(round(amount * 100))


def _hmac_sha256(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


# ─── Signature verification ───────────────────


def verify_razorpay_signature(order_id: str, payment_id: str, signature: str, secret: str | None = None) -> bool:
    """Checkout signature: HMAC-SHA256(key_secret, "order_id|payment_id")."""
    secret = secret if secret is not None else settings.RAZORPAY_KEY_SECRET
    if not secret or not signature:
        return False
    expected = _hmac_sha256(secret, f"{order_id}|{payment_id}".encode("utf-8"))
    return hmac.compare_digest(expected, signature)


def verify_razorpay_webhook(body: bytes, signature: str | None, secret: str | None = None) -> bool:
    """Webhook signature: HMAC-SHA256(webhook_secret, raw body)."""
    secret = secret if secret is not None else settings.RAZORPAY_WEBHOOK_SECRET
    if not secret or not signature:
        return False
    return hmac.compare_digest(_hmac_sha256(secret, body), signature)


def parse_stripe_signature_header(header: str) -> tuple[int | None, list[str]]:
    """Split `t=<ts>,v1=<sig>[,v1=<sig>...]` into (timestamp, [v1 signatures])."""
    timestamp = None
    signatures: list[str] = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(
    body: bytes,
    header: str | None,
    secret: str | None = None,
    *,
    tolerance: int | None = None,
    now: float | None = None,
) -> bool:
    """
    Stripe webhook signature: some v1 entry must equal
    HMAC-SHA256(webhook_secret, "<t>.<raw body>") and `t` must be within
    `tolerance` seconds of now.
    """
    secret = secret if secret is not None else settings.STRIPE_WEBHOOK_SECRET
    tolerance = tolerance if tolerance is not None else settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS
    if not secret or not header:
        return False

    timestamp, signatures = parse_stripe_signature_header(header)
    if timestamp is None or not signatures:
        return False
    if tolerance and abs((now if now is not None else time.time()) - timestamp) > tolerance:
        return False

    expected = _hmac_sha256(secret, str(timestamp).encode("utf-8") + b"." + body)
    return any(hmac.compare_digest(expected, candidate) for candidate in signatures)


# ─── API clients ──────────────────────────────


class _GatewayClient:
    provider = "gateway"

    def __init__(
        self,
        base_url: str,
        *,
        auth: httpx.Auth | tuple[str, str] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = timeout if timeout is not None else settings.PAYMENT_GATEWAY_TIMEOUT
        self._transport = transport

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            auth=self._auth,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.HTTPError as exc:
                logger.error("Payment gateway unreachable", provider=self.provider, path=path, error=str(exc))
                raise PaymentGatewayError(
                    f"Could not reach {self.provider}", provider=self.provider
                ) from exc

        if response.is_error:
            logger.error(
                "Payment gateway error",
                provider=self.provider,
                path=path,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise PaymentGatewayError(
                f"{self.provider} request failed",
                provider=self.provider,
                provider_status=response.status_code,
            )
        return response.json()


class RazorpayClient(_GatewayClient):
    """Razorpay Orders API (basic auth with key id/secret, JSON bodies)."""

    provider = "razorpay"

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        *,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url or settings.RAZORPAY_API_BASE_URL,
            auth=(key_id or settings.RAZORPAY_KEY_ID, key_secret or settings.RAZORPAY_KEY_SECRET),
            transport=transport,
        )

    async def create_order(
        self,
        *,
        amount: float,
        receipt: str,
        notes: dict[str, str],
        currency: str | None = None,
    ) -> dict[str, Any]:
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency or settings.RAZORPAY_CURRENCY,
            "receipt": receipt,
            "notes": notes,
        }
        return await self._request("POST", "/orders", json=payload)

    async def fetch_order(self, order_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/orders/{order_id}")


class StripeClient(_GatewayClient):
    """Stripe PaymentIntents API (bearer secret key, form-encoded bodies)."""

    provider = "stripe"

    def __init__(
        self,
        secret_key: str | None = None,
        *,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url or settings.STRIPE_API_BASE_URL, transport=transport)
        self._secret_key = secret_key or settings.STRIPE_SECRET_KEY

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._secret_key}", **kwargs.pop("headers", {})}
        return await super()._request(method, path, headers=headers, **kwargs)

    async def create_payment_intent(
        self,
        *,
        amount: float,
        metadata: dict[str, str],
        description: str,
        receipt_email: str | None = None,
        currency: str | None = None,
    ) -> dict[str, Any]:
        form: dict[str, Any] = {
            "amount": to_minor_units(amount),
            "currency": currency or settings.STRIPE_CURRENCY,
            "description": description,
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in metadata.items():
            form[f"metadata[{key}]"] = value
        if receipt_email:
            form["receipt_email"] = receipt_email
        return await self._request("POST", "/payment_intents", data=form)

    async def retrieve_payment_intent(self, intent_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/payment_intents/{intent_id}")


def get_razorpay_client() -> RazorpayClient:
    return RazorpayClient()


def get_stripe_client() -> StripeClient:
    return StripeClient()
