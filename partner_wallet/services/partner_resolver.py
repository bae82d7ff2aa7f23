"""Resolve the partner a Razorpay payment belongs to."""
from __future__ import annotations

import logging
import re
from typing import Any, Callable, Mapping, Sequence

from partner_wallet.schemas.razorpay import RazorpayWebhookEvent
from partner_wallet.services.razorpay_client import PROVIDER_ERRORS, RazorpayClient
from partner_wallet.utils.security_events import log_security_event

logger = logging.getLogger(__name__)

PARTNER_NOTE_KEY = "partner_id"
_DIGITS = re.compile(r"^[0-9]+$")

PartnerStrategy = Callable[[RazorpayWebhookEvent], str | None]


def parse_partner_id(value: Any) -> int | None:
    """Return a positive integer partner id, or ``None`` for anything malformed."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    text = str(value).strip()
    if not _DIGITS.match(text):
        return None
    parsed = int(text)
    return parsed if parsed > 0 else None


def _note(notes: Mapping[str, Any] | None) -> str | None:
    if not notes:
        return None
    value = notes.get(PARTNER_NOTE_KEY)
    if value is None or str(value).strip() == "":
        return None
    return str(value)


def from_order_notes(event: RazorpayWebhookEvent) -> str | None:
    return _note(event.order.notes) if event.order is not None else None


def from_payment_notes(event: RazorpayWebhookEvent) -> str | None:
    return _note(event.payment.notes) if event.payment is not None else None


def from_provider_order(client: RazorpayClient) -> PartnerStrategy:
    """Build a strategy that re-reads the order notes from the Razorpay API."""

    def _strategy(event: RazorpayWebhookEvent) -> str | None:
        order_id = event.order_id
        if not order_id:
            return None
        try:
            order = client.fetch_order(order_id)
        except PROVIDER_ERRORS as exc:
            logger.warning(
                "Razorpay order lookup failed during partner resolution",
                extra={"order_id": order_id, "error": type(exc).__name__},
            )
            return None
        notes = order.get("notes") if isinstance(order, Mapping) else None
        # The API returns [] for orders without notes.
        return _note(notes) if isinstance(notes, Mapping) else None

    return _strategy


def default_partner_strategies(
    client: RazorpayClient | None,
) -> list[tuple[str, PartnerStrategy]]:
    strategies: list[tuple[str, PartnerStrategy]] = [
        ("order_notes", from_order_notes),
        ("payment_notes", from_payment_notes),
    ]
    if client is not None:
        strategies.append(("provider_order", from_provider_order(client)))
    return strategies


def resolve_partner_id(
    event: RazorpayWebhookEvent,
    strategies: Sequence[tuple[str, PartnerStrategy]],
) -> tuple[int | None, str | None]:
    """Try each strategy in order; return ``(partner_id, strategy_name)``.

    Malformed values are logged and skipped so a later source can still supply a
    valid id. When nothing resolves a high severity event is emitted.
    """

    payment = event.payment
    context = {
        "event": event.event,
        "payment_id": payment.id if payment is not None else None,
        "order_id": event.order_id,
    }
    for name, strategy in strategies:
        raw = strategy(event)
        if raw is None:
            continue
        partner_id = parse_partner_id(raw)
        if partner_id is None:
            logger.warning(
                "Ignoring malformed partner_id",
                extra={**context, "source": name, "raw_partner_id": raw[:32]},
            )
            continue
        if name != "order_notes":
            logger.info("partner_id resolved from fallback source", extra={**context, "source": name})
        return partner_id, name

    log_security_event(
        "WEBHOOK_PARTNER_UNRESOLVED",
        {**context, "sources_tried": [name for name, _ in strategies]},
        "high",
    )
    return None, None


__all__ = [
    "PartnerStrategy",
    "default_partner_strategies",
    "from_order_notes",
    "from_payment_notes",
    "from_provider_order",
    "parse_partner_id",
    "resolve_partner_id",
]
