"""Signed checkout requests and callback verification for the hosted payment gateway."""
from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
import string
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from fastapi import HTTPException, status

from partner_wallet.config import Settings
from partner_wallet.schemas.checkout import (
    CallbackData,
    CallbackError,
    CallbackResult,
    CheckoutCreate,
    CheckoutRead,
)
from partner_wallet.utils.errors import error_response
from partner_wallet.utils.masking import preview
from partner_wallet.utils.security_events import log_security_event
from partner_wallet.utils.time import epoch_millis, utcnow

logger = logging.getLogger(__name__)

CHECKOUT_PATH = "/payment/v1/checkout"

MIN_AMOUNT = Decimal("1")
MAX_AMOUNT = Decimal("1000000")
MAX_TXN_ID_LENGTH = 30

REQUEST_SIGNATURE_FIELDS: tuple[str, ...] = (
    "merchantId",
    "clientId",
    "merchantTxnId",
    "merchantTxnAmount",
    "currency",
    "timestamp",
    "callbackUrl",
    "customerId",
    "customerName",
    "customerEmailId",
    "customerMobileNo",
    "customerStreetAddress",
    "customerCity",
    "customerState",
    "customerPIN",
    "customerCountry",
    "tags",
    "udf1",
    "udf2",
    "udf3",
    "udf4",
    "udf5",
    "reconId",
    "merchantOrderId",
    "utilityBiller",
    "subMerchantPayInfo",
    "verifiedAccountInfo",
    "verifiedPayment",
    "paymentMode",
    "txnType",
    "returnUrl",
)

CALLBACK_SIGNATURE_FIELDS: tuple[str, ...] = (
    "merchantTxnId",
    "txnReferenceId",
    "amount",
    "currency",
    "handlingFee",
    "taxAmount",
    "mode",
    "subMode",
    "issuerCode",
    "issuerName",
    "mndtRefId",
    "mndtUmn",
    "errorCode",
    "errorDescription",
    "paymentDueDate",
    "transactionStartDate",
    "transactionEndDate",
    "rrn",
    "subMerchantPayInfo",
    "merchantOrderId",
    "authCode",
    "payerVpa",
    "accountType",
    "maskedCardNo",
)

SUCCESS_CODES = frozenset({"SPG-0000", "00", "SUCCESS"})
PENDING_CODES = frozenset({"SPG-0002", "SPG-5001", "SPG-8000", "02", "PENDING"})

ERROR_CODES: dict[str, tuple[str, str]] = {
    "SPG-0000": ("SUCCESS", "SUCCESS"),
    "SPG-0001": ("FAILED", "BUSINESS"),
    "SPG-0002": ("PENDING", "BUSINESS"),
    "SPG-0003": ("Invalid merchant id", "AUTHENTICATION"),
    "SPG-0004": ("Signature is absent in the request", "AUTHENTICATION"),
    "SPG-0005": ("Invalid signature", "AUTHENTICATION"),
    "SPG-0006": ("Invalid session/ Session expired", "AUTHENTICATION"),
    "SPG-0008": ("Error while validating request", "VALIDATION"),
    "SPG-0009": ("Transaction declined because of expired key", "AUTHENTICATION"),
    "SPG-0010": ("Invalid request field[s]", "VALIDATION"),
    "SPG-0013": ("Request data has been tampered with", "AUTHENTICATION"),
    "SPG-0014": ("Duplicate request for merchant id and merchant txn id", "BUSINESS"),
    "SPG-0015": ("Unable to process request", "TECHNICAL"),
    "SPG-0018": ("Invalid payment mode", "VALIDATION"),
    "SPG-0019": ("Please provide valid payment mode", "VALIDATION"),
    "SPG-0025": ("Transaction does not exist", "BUSINESS"),
    "SPG-0031": ("Business exception", "BUSINESS"),
    "SPG-0032": ("Error while making HTTP call", "TECHNICAL"),
    "SPG-0033": ("Invalid card expiry month", "VALIDATION"),
    "SPG-0034": ("Invalid card expiry year", "VALIDATION"),
    "SPG-0035": ("Invalid card cvv", "VALIDATION"),
    "SPG-0036": ("Invalid card number", "VALIDATION"),
    "SPG-0037": ("Card has expired", "VALIDATION"),
    "SPG-0038": ("Client error", "TECHNICAL"),
    "SPG-0039": ("Duplicate combination of merchantId and merchantTxnId", "BUSINESS"),
    "SPG-0041": ("Merchant not authorised for the API", "AUTHORIZATION"),
    "SPG-0047": ("A txn with the combination of merchantId and merchantTxnId already exists", "BUSINESS"),
    "SPG-5000": ("Internal server error", "TECHNICAL"),
    "SPG-5001": ("Duplicate PG response", "TECHNICAL"),
    "SPG-5002": ("Incorrect combination of mode/submode", "VALIDATION"),
    "SPG-5003": ("PG unavailable", "TECHNICAL"),
    "SPG-5004": ("Invalid card number entered", "VALIDATION"),
    "SPG-5005": ("Invalid bank code", "VALIDATION"),
    "SPG-5006": ("Error from supporting service", "TECHNICAL"),
    "SPG-5007": ("Invalid bank name", "VALIDATION"),
    "SPG-5008": ("Card not supported", "VALIDATION"),
}

_TXN_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_CUSTOMER_TEXT_RE = re.compile(r"^[A-Za-z0-9@.,\s\-/]*$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_MOBILE_RE = re.compile(r"^[6-9]\d{9}$")
_RANDOM_ALPHABET = string.ascii_uppercase + string.digits


def _validation_error(message: str, code: str = "VALIDATION_ERROR") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=error_response(code, message),
    )


def validate_amount(amount: Decimal | int | float | str) -> Decimal:
    """Return ``amount`` as a Decimal or raise HTTP 400 when out of range."""

    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise _validation_error("Amount must be a number.")
    if not value.is_finite():
        raise _validation_error("Amount must be a finite number.")
    if value < MIN_AMOUNT:
        raise _validation_error("Amount must be at least 1.")
    if value > MAX_AMOUNT:
        raise _validation_error("Amount cannot exceed 1,000,000.")
    if value != value.quantize(Decimal("0.01")):
        raise _validation_error("Amount cannot have more than two decimal places.")
    return value


def validate_merchant_txn_id(txn_id: str | None) -> str:
    if not txn_id:
        raise _validation_error("Merchant transaction id is required.")
    if len(txn_id) > MAX_TXN_ID_LENGTH:
        raise _validation_error("Merchant transaction id cannot exceed 30 characters.")
    if not _TXN_ID_RE.match(txn_id):
        raise _validation_error(
            "Merchant transaction id can only contain letters, numbers, hyphens and underscores."
        )
    return txn_id


def validate_customer_info(fields: Mapping[str, Any]) -> None:
    """Validate the customer fields of a checkout request (gateway field names)."""

    for name in (
        "customerId",
        "customerName",
        "customerStreetAddress",
        "customerCity",
        "customerState",
        "customerPIN",
        "customerCountry",
    ):
        value = fields.get(name)
        if value and not _CUSTOMER_TEXT_RE.match(str(value)):
            raise _validation_error(f"{name} contains invalid characters.")

    email = fields.get("customerEmailId")
    if email and not _EMAIL_RE.match(str(email)):
        raise _validation_error("Invalid email format.")

    mobile = fields.get("customerMobileNo")
    if mobile and not _MOBILE_RE.match(str(mobile)):
        raise _validation_error("Invalid mobile number format.")


def validate_timestamp(
    timestamp: int,
    now: int,
    *,
    window_seconds: int = 300,
    reject_future: bool = False,
) -> None:
    """Reject request timestamps (seconds) older than ``window_seconds``."""

    diff = now - timestamp
    if diff > window_seconds:
        raise _validation_error("Request timestamp is too old.", "TIMESTAMP_TOO_OLD")
    if diff < 0:
        if reject_future and -diff > window_seconds:
            raise _validation_error("Request timestamp is in the future.", "TIMESTAMP_IN_FUTURE")
        logger.warning("Checkout timestamp is in the future", extra={"skew_seconds": -diff})


def _js_string(value: Any) -> str:
    """Stringify a value the way the gateway does when it signs a request."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(value)


def generate_signature(data: Mapping[str, Any], merchant_key: str, callback: bool = False) -> str:
    """Compute the gateway signature.

    Non-empty values of the signature fields are concatenated in ascending order of
    their field names (case-insensitive), the merchant key is appended and the
    result is SHA-256 hex encoded.
    """

    fields = CALLBACK_SIGNATURE_FIELDS if callback else REQUEST_SIGNATURE_FIELDS
    present = [
        (name, _js_string(data[name]))
        for name in fields
        if data.get(name) is not None and data.get(name) != ""
    ]
    present.sort(key=lambda item: (item[0].casefold(), item[0]))
    to_hash = "".join(value for _, value in present) + merchant_key
    return hashlib.sha256(to_hash.encode("utf-8")).hexdigest()


def generate_merchant_txn_id(prefix: str = "TXN") -> str:
    suffix = "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(6))
    return f"{prefix}_{epoch_millis()}_{suffix}"[:MAX_TXN_ID_LENGTH]


def _require_checkout_settings(settings: Settings) -> tuple[str, str, str]:
    merchant_id = settings.CHECKOUT_MERCHANT_ID
    client_id = settings.CHECKOUT_CLIENT_ID
    merchant_key = settings.CHECKOUT_MERCHANT_KEY
    if not (merchant_id and client_id and merchant_key):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_response("CHECKOUT_NOT_CONFIGURED", "Checkout gateway is not configured."),
        )
    return merchant_id, client_id, merchant_key


def build_checkout_request(
    payload: CheckoutCreate,
    settings: Settings,
    *,
    now: int | None = None,
) -> CheckoutRead:
    """Validate ``payload`` and return the signed form the browser posts to the gateway."""

    merchant_id, client_id, merchant_key = _require_checkout_settings(settings)
    current = now if now is not None else int(utcnow().timestamp())
    timestamp = payload.timestamp if payload.timestamp is not None else current
    validate_timestamp(
        timestamp,
        current,
        window_seconds=settings.CHECKOUT_TIMESTAMP_WINDOW_SECONDS,
        reject_future=settings.CHECKOUT_REJECT_FUTURE_TIMESTAMPS,
    )
    amount = validate_amount(payload.amount)
    merchant_txn_id = validate_merchant_txn_id(generate_merchant_txn_id())

    fields: dict[str, Any] = {
        "merchantId": merchant_id,
        "clientId": client_id,
        "callbackUrl": settings.CHECKOUT_CALLBACK_URL,
        "merchantTxnId": merchant_txn_id,
        "merchantTxnAmount": amount,
        "currency": settings.WALLET_CURRENCY,
        "timestamp": timestamp,
        "customerId": payload.customer_id,
        "customerName": payload.customer_name,
        "customerEmailId": payload.customer_email,
        "customerMobileNo": payload.customer_mobile,
        "customerStreetAddress": payload.customer_street_address,
        "customerCity": payload.customer_city,
        "customerState": payload.customer_state,
        "customerPIN": payload.customer_pin,
        "customerCountry": payload.customer_country,
        "tags": payload.tags,
        "udf1": f"partner_id:{payload.partner_id}" if payload.partner_id else None,
        "reconId": payload.recon_id,
        "merchantOrderId": payload.merchant_order_id,
        "paymentMode": "ALL",
        "txnType": "SALE",
        "returnUrl": settings.CHECKOUT_RETURN_URL,
    }
    validate_customer_info(fields)

    form = {name: value for name, value in fields.items() if value is not None and value != ""}
    form["signature"] = generate_signature(form, merchant_key)
    logger.info(
        "Checkout request built",
        extra={"merchant_txn_id": merchant_txn_id, "amount": str(amount), "partner_id": payload.partner_id},
    )
    return CheckoutRead(
        action_url=f"{settings.CHECKOUT_BASE_URL.rstrip('/')}{CHECKOUT_PATH}",
        merchant_txn_id=merchant_txn_id,
        fields={name: _js_string(value) for name, value in form.items()},
    )


def verify_callback_signature(callback: CallbackData, merchant_key: str) -> bool:
    expected = generate_signature(callback.signed_fields(), merchant_key, callback=True)
    return hmac.compare_digest(expected.encode("utf-8"), callback.signature.encode("utf-8"))


def process_callback(callback: CallbackData, merchant_key: str) -> CallbackResult:
    """Verify and classify a gateway callback as SUCCESS, PENDING or FAILED."""

    common = {
        "transaction_id": callback.merchant_txn_id,
        "reference_id": callback.txn_reference_id,
        "amount": callback.amount,
        "currency": callback.currency,
    }
    if not verify_callback_signature(callback, merchant_key):
        log_security_event(
            "CHECKOUT_CALLBACK_INVALID_SIGNATURE",
            {"merchant_txn_id": callback.merchant_txn_id, "received": preview(callback.signature)},
            "high",
        )
        return CallbackResult(
            success=False,
            error=CallbackError(
                code="INVALID_SIGNATURE",
                message="Invalid callback signature",
                description="The callback signature verification failed",
                category="AUTHENTICATION",
            ),
        )

    if callback.status_code in SUCCESS_CODES:
        return CallbackResult(success=True, status="SUCCESS", **common)
    if callback.status_code in PENDING_CODES:
        return CallbackResult(success=True, status="PENDING", **common)

    message, category = ERROR_CODES.get(callback.status_code, ("Unknown error", "TECHNICAL"))
    log_security_event(
        "CHECKOUT_PAYMENT_FAILED",
        {"merchant_txn_id": callback.merchant_txn_id, "status_code": callback.status_code},
        "medium",
    )
    return CallbackResult(
        success=False,
        status="FAILED",
        error=CallbackError(
            code=callback.status_code,
            message=message,
            description=callback.error_description or message,
            category=category,
        ),
        **common,
    )


__all__ = [
    "CALLBACK_SIGNATURE_FIELDS",
    "REQUEST_SIGNATURE_FIELDS",
    "build_checkout_request",
    "generate_merchant_txn_id",
    "generate_signature",
    "process_callback",
    "validate_amount",
    "validate_customer_info",
    "validate_merchant_txn_id",
    "validate_timestamp",
    "verify_callback_signature",
]
