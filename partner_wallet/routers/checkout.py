"""Hosted checkout gateway routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from partner_wallet.config import Settings, get_settings
from partner_wallet.schemas.checkout import CallbackData, CallbackResult, CheckoutCreate, CheckoutRead
from partner_wallet.security import require_api_key
from partner_wallet.services import checkout as checkout_service
from partner_wallet.utils.errors import error_response

router = APIRouter(prefix="/payment", tags=["checkout"])


@router.post("/checkout", response_model=CheckoutRead, dependencies=[Depends(require_api_key)])
def create_checkout(
    payload: CheckoutCreate,
    settings: Settings = Depends(get_settings),
) -> CheckoutRead:
    return checkout_service.build_checkout_request(payload, settings)


@router.post("/callback", response_model=CallbackResult)
def checkout_callback(
    callback: CallbackData,
    settings: Settings = Depends(get_settings),
) -> CallbackResult:
    if not settings.CHECKOUT_MERCHANT_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_response("CHECKOUT_NOT_CONFIGURED", "Checkout gateway is not configured."),
        )
    result = checkout_service.process_callback(callback, settings.CHECKOUT_MERCHANT_KEY)
    if result.error is not None and result.error.code == "INVALID_SIGNATURE":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("INVALID_SIGNATURE", result.error.message),
        )
    return result


__all__ = ["router"]
