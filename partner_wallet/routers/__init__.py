"""API routers for the partner wallet backend."""
from fastapi import APIRouter

from . import checkout, health, wallets, webhooks


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(webhooks.router)
    api_router.include_router(wallets.router)
    api_router.include_router(checkout.router)
    return api_router
