"""Health check endpoint."""
from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from partner_wallet.config import get_settings
from partner_wallet.db import get_engine
from partner_wallet.utils.masking import fingerprint

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"


def _db_status() -> str:
    """Return 'ok' if the DB is reachable, 'error' otherwise."""

    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok"
    except SQLAlchemyError:
        logger.exception("DB health check failed")
        return "error"


def _expected_migration_head() -> str | None:
    if not ALEMBIC_INI.exists():
        return None
    config = Config(str(ALEMBIC_INI))
    config.set_main_option("script_location", str(ALEMBIC_INI.parent / "alembic"))
    return ScriptDirectory.from_config(config).get_current_head()


def _migrations_status() -> tuple[bool, str]:
    expected_head = _expected_migration_head()
    try:
        with get_engine().connect() as conn:
            current = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
    except SQLAlchemyError:
        logger.warning("Migration check failed; alembic_version table unavailable")
        return False, "unknown"
    if expected_head is None:
        return False, "unknown"
    if current == expected_head:
        return True, "up_to_date"
    return False, "out_of_date"


@router.get("", summary="Health check")
def healthcheck() -> dict[str, object]:
    """Return database, migration and integration configuration status."""

    settings = get_settings()
    db_status = _db_status()
    db_ok = db_status == "ok"
    if db_ok:
        migrations_ok, migrations_status = _migrations_status()
    else:
        migrations_ok, migrations_status = False, "unknown"
    return {
        "status": "ok" if db_ok and migrations_ok else "degraded",
        "db_status": db_status,
        "migrations_ok": migrations_ok,
        "migrations_status": migrations_status,
        "webhook_secret_configured": bool(settings.razorpay_webhook_secret),
        "webhook_secret_fingerprint": fingerprint(settings.razorpay_webhook_secret),
        "razorpay": {
            "key_configured": bool(settings.razorpay_key_id and settings.razorpay_key_secret),
            "mode": settings.razorpay_mode,
        },
        "checkout_configured": bool(
            settings.CHECKOUT_MERCHANT_ID and settings.CHECKOUT_CLIENT_ID and settings.CHECKOUT_MERCHANT_KEY
        ),
    }


__all__ = ["router"]
