"""Routes for Razorpay webhook handling."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from partner_wallet.db import get_db
from partner_wallet.schemas.razorpay import WebhookAck
from partner_wallet.services import razorpay_webhooks
from partner_wallet.services.razorpay_client import RazorpayClient, get_razorpay_client

router = APIRouter(tags=["webhooks"])


@router.post("/api/payment-webhook", status_code=status.HTTP_200_OK, response_model=WebhookAck)
@router.post("/razorpay/webhook", status_code=status.HTTP_200_OK, response_model=WebhookAck)
async def razorpay_webhook(
    request: Request,
    db: Session = Depends(get_db),
    client: RazorpayClient | None = Depends(get_razorpay_client),
) -> dict[str, object]:
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    # Partner resolution can block on a Razorpay order lookup.
    return await run_in_threadpool(
        razorpay_webhooks.process_webhook,
        db,
        raw_body,
        headers,
        client=client,
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


@router.get("/razorpay/webhook")
def razorpay_webhook_status() -> dict[str, str]:
    return razorpay_webhooks.webhook_status()


__all__ = ["router"]
