"""Razorpay SDK wrapper for order and payment lookups."""
from __future__ import annotations

import logging
from typing import Any, Mapping

import razorpay
import requests
from razorpay.errors import BadRequestError, GatewayError, ServerError

from partner_wallet.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Everything the SDK can raise for a failed call, including transport timeouts.
PROVIDER_ERRORS: tuple[type[Exception], ...] = (
    BadRequestError,
    GatewayError,
    ServerError,
    requests.RequestException,
)


class RazorpayClient:
    """Wrapper around the Razorpay Python SDK to isolate provider concerns."""

    def __init__(self, settings: Settings) -> None:
        if not settings.razorpay_key_id or not settings.razorpay_key_secret:
            raise RuntimeError(
                "Razorpay credentials are missing; configure RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
            )
        self.settings = settings
        self.key_id = settings.razorpay_key_id
        self.timeout = settings.RAZORPAY_API_TIMEOUT_SECONDS
        self._client = razorpay.Client(auth=(settings.razorpay_key_id, settings.razorpay_key_secret))

    @classmethod
    def from_env(cls) -> "RazorpayClient":
        """Instantiate a client using the cached application settings."""

        return cls(get_settings())

    def fetch_order(self, order_id: str) -> dict[str, Any]:
        return self._client.order.fetch(order_id, timeout=self.timeout)

    def fetch_payment(self, payment_id: str) -> dict[str, Any]:
        return self._client.payment.fetch(payment_id, timeout=self.timeout)

    def create_order(
        self,
        *,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        """Create an order that Razorpay Checkout can be opened against."""

        payload = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": dict(notes or {}),
        }
        order = self._client.order.create(data=payload, timeout=self.timeout)
        logger.info(
            "Razorpay order created",
            extra={"order_id": order.get("id"), "amount_minor": amount_minor, "receipt": receipt},
        )
        return order


def get_razorpay_client() -> RazorpayClient | None:
    """FastAPI dependency returning a configured client, or ``None`` when credentials are absent."""

    settings = get_settings()
    if not (settings.razorpay_key_id and settings.razorpay_key_secret):
        return None
    return RazorpayClient(settings)


__all__ = ["PROVIDER_ERRORS", "RazorpayClient", "get_razorpay_client"]
