"""Schemas for the hosted checkout gateway."""
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Numbers keep their JSON type so the callback signature is computed over the
# exact values the gateway signed.
Scalar = str | int | float


class CheckoutCreate(BaseModel):
    amount: Decimal
    partner_id: int | None = Field(default=None, gt=0)
    customer_id: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    customer_mobile: str | None = None
    customer_street_address: str | None = None
    customer_city: str | None = None
    customer_state: str | None = None
    customer_pin: str | None = None
    customer_country: str | None = "India"
    tags: str | None = None
    merchant_order_id: str | None = None
    recon_id: str | None = None
    timestamp: int | None = Field(default=None, description="Client request time, seconds since the epoch.")


class CheckoutRead(BaseModel):
    action_url: str
    merchant_txn_id: str
    fields: dict[str, Any]


class CallbackData(BaseModel):
    """Callback posted by the gateway once the customer finishes checkout."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    status_code: str
    status_message: str | None = None
    merchant_txn_id: str
    txn_reference_id: str | None = None
    amount: Scalar | None = None
    currency: str | None = None
    handling_fee: Scalar | None = None
    tax_amount: Scalar | None = None
    mode: str | None = None
    sub_mode: str | None = None
    issuer_code: str | None = None
    issuer_name: str | None = None
    mndt_ref_id: str | None = None
    mndt_umn: str | None = None
    error_code: str | None = None
    error_description: str | None = None
    payment_due_date: str | None = None
    transaction_start_date: str | None = None
    transaction_end_date: str | None = None
    rrn: str | None = None
    sub_merchant_pay_info: str | None = None
    merchant_order_id: str | None = None
    auth_code: str | None = None
    payer_vpa: str | None = None
    account_type: str | None = None
    masked_card_no: str | None = None
    signature: str = ""

    def signed_fields(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"signature"}, exclude_none=True)


class CallbackError(BaseModel):
    code: str
    message: str
    description: str | None = None
    category: str


class CallbackResult(BaseModel):
    success: bool
    status: str | None = None
    transaction_id: str | None = None
    reference_id: str | None = None
    amount: Scalar | None = None
    currency: str | None = None
    error: CallbackError | None = None


__all__ = ["CheckoutCreate", "CheckoutRead", "CallbackData", "CallbackError", "CallbackResult"]
