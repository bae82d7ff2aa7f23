"""Structured security/audit event logging."""
from __future__ import annotations

import logging
from typing import Any, Literal, Mapping

from partner_wallet.config import get_settings
from partner_wallet.utils.masking import sanitize_for_log

logger = logging.getLogger("partner_wallet.security")

Severity = Literal["low", "medium", "high"]

SEVERITY_LEVELS: dict[str, int] = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.ERROR,
}


def log_security_event(
    event: str,
    details: Mapping[str, Any] | None = None,
    severity: Severity = "low",
) -> None:
    """Emit a security event as a structured log record.

    The record carries ``security_event``, ``severity``, ``details`` and ``env`` as
    extra fields so the JSON formatter renders them as top-level keys. Contact
    details are masked and secret-looking keys fingerprinted before logging.
    """

    level = SEVERITY_LEVELS.get(severity, logging.WARNING)
    logger.log(
        level,
        "Security event: %s",
        event,
        extra={
            "security_event": event,
            "severity": severity,
            "details": sanitize_for_log(details),
            "env": get_settings().app_env,
        },
    )


__all__ = ["Severity", "SEVERITY_LEVELS", "log_security_event"]
