"""Security dependencies for admin API key validation."""
from __future__ import annotations

import hmac

from fastapi import Depends, Header, HTTPException, status

from partner_wallet.config import get_settings
from partner_wallet.utils.errors import error_response
from partner_wallet.utils.masking import fingerprint
from partner_wallet.utils.security_events import log_security_event


def _extract_key(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> str | None:
    """Read the key from ``Authorization: Bearer ...`` or ``X-API-Key``."""
    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def require_api_key(token: str | None = Depends(_extract_key)) -> str:
    """Validate the admin API key and return a fingerprint identifying the caller."""

    expected = get_settings().ADMIN_API_KEY
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_response("API_KEY_NOT_CONFIGURED", "Admin API key is not configured."),
        )
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("NO_API_KEY", "API key required."),
        )
    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        log_security_event("INVALID_API_KEY", {"key_fingerprint": fingerprint(token)}, "medium")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("INVALID_API_KEY", "Invalid API key."),
        )
    return fingerprint(token) or ""


__all__ = ["require_api_key"]
