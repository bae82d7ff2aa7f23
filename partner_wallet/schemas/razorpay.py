"""Schemas for Razorpay webhook payloads and top-up flows."""
from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_notes(value: Any) -> dict[str, str]:
    """Razorpay sends ``[]`` instead of ``{}`` when an entity has no notes."""

    if value is None or isinstance(value, list):
        return {}
    if not isinstance(value, dict):
        raise ValueError("notes must be an object")
    return {str(key): "" if item is None else str(item) for key, item in value.items()}


class _Entity(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    notes: dict[str, str] = Field(default_factory=dict)

    @field_validator("notes", mode="before")
    @classmethod
    def _normalise_notes(cls, value: Any) -> dict[str, str]:
        return _coerce_notes(value)


class PaymentEntity(_Entity):
    id: str
    order_id: str | None = None
    amount: int = 0
    currency: str = "INR"
    status: str | None = None
    method: str | None = None
    description: str | None = None
    email: str | None = None
    contact: str | None = None
    error_code: str | None = None
    error_description: str | None = None
    error_reason: str | None = None


class OrderEntity(_Entity):
    id: str
    amount: int | None = None
    currency: str | None = None
    receipt: str | None = None
    status: str | None = None


class RefundEntity(_Entity):
    id: str
    payment_id: str | None = None
    amount: int | None = None
    currency: str | None = None
    status: str | None = None


class PaymentWrapper(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    entity: PaymentEntity


class OrderWrapper(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    entity: OrderEntity


class RefundWrapper(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    entity: RefundEntity


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    payment: PaymentWrapper | None = None
    order: OrderWrapper | None = None
    refund: RefundWrapper | None = None


class RazorpayWebhookEvent(BaseModel):
    """Inbound webhook envelope."""

    model_config = ConfigDict(extra="allow", frozen=True)

    event: str
    payload: WebhookPayload = Field(default_factory=WebhookPayload)
    account_id: str | None = None
    created_at: int | None = None

    @property
    def payment(self) -> PaymentEntity | None:
        return self.payload.payment.entity if self.payload.payment else None

    @property
    def order(self) -> OrderEntity | None:
        return self.payload.order.entity if self.payload.order else None

    @property
    def refund(self) -> RefundEntity | None:
        return self.payload.refund.entity if self.payload.refund else None

    @property
    def order_id(self) -> str | None:
        if self.order is not None:
            return self.order.id
        if self.payment is not None:
            return self.payment.order_id
        return None


class CustomerInfo(BaseModel):
    name: str | None = Field(default=None, max_length=100)
    email: str | None = Field(default=None, max_length=254)
    contact: str | None = Field(default=None, max_length=20)


class TopupOrderCreate(BaseModel):
    partner_id: int = Field(gt=0)
    amount: Decimal
    customer: CustomerInfo | None = None


class TopupOrderRead(BaseModel):
    order_id: str
    amount: int
    currency: str
    receipt: str
    status: str | None = None
    key_id: str | None = None


class PaymentVerificationCreate(BaseModel):
    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)
    partner_id: int = Field(gt=0)


class PaymentVerificationRead(BaseModel):
    success: bool
    outcome: str
    payment_id: str
    partner_id: int
    amount: Decimal | None = None
    balance_after: Decimal | None = None
    transaction_id: int | None = None


class WebhookAck(BaseModel):
    success: bool = True
    event: str
    outcome: str


__all__ = [
    "PaymentEntity",
    "OrderEntity",
    "RefundEntity",
    "RazorpayWebhookEvent",
    "CustomerInfo",
    "TopupOrderCreate",
    "TopupOrderRead",
    "PaymentVerificationCreate",
    "PaymentVerificationRead",
    "WebhookAck",
]
