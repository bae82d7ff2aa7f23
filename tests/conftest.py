"""Test configuration."""
import hashlib
import hmac
import json
import os
from collections.abc import AsyncIterator, Callable, Iterator
from decimal import Decimal
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# --- Default env before the app (and its cached settings) is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_partnerwallet")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test-key-secret")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("CHECKOUT_MERCHANT_ID", "TESTMERCHANT01")
os.environ.setdefault("CHECKOUT_CLIENT_ID", "TESTCLIENT01")
os.environ.setdefault("CHECKOUT_MERCHANT_KEY", "test-merchant-key")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")

from partner_wallet.db import get_db  # noqa: E402
from partner_wallet.main import app  # noqa: E402
from partner_wallet.models import Base, Partner, WalletStatus  # noqa: E402
from partner_wallet.services.razorpay_client import get_razorpay_client  # noqa: E402


class FakeRazorpayClient:
    """In-memory stand-in for :class:`RazorpayClient`."""

    def __init__(self) -> None:
        self.key_id = os.environ["RAZORPAY_KEY_ID"]
        self.orders: dict[str, dict[str, Any]] = {}
        self.payments: dict[str, dict[str, Any]] = {}
        self.created_orders: list[dict[str, Any]] = []
        self.fetch_order_calls: list[str] = []
        self.fetch_order_error: Exception | None = None
        self.create_order_error: Exception | None = None

    def fetch_order(self, order_id: str) -> dict[str, Any]:
        self.fetch_order_calls.append(order_id)
        if self.fetch_order_error is not None:
            raise self.fetch_order_error
        return self.orders.get(order_id, {"id": order_id, "notes": []})

    def fetch_payment(self, payment_id: str) -> dict[str, Any]:
        return self.payments[payment_id]

    def create_order(self, *, amount_minor: int, currency: str, receipt: str, notes=None) -> dict[str, Any]:
        if self.create_order_error is not None:
            raise self.create_order_error
        order = {
            "id": f"order_{len(self.created_orders) + 1:04d}",
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "status": "created",
            "notes": dict(notes or {}),
        }
        self.created_orders.append(order)
        return order


def _sqlite_savepoint_support(engine: Engine) -> None:
    # pysqlite needs explicit BEGIN handling for SAVEPOINT to behave.
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
def engine() -> Iterator[Engine]:
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    _sqlite_savepoint_support(test_engine)
    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def file_engine(tmp_path) -> Iterator[Engine]:
    """A file-backed database so separate sessions use separate connections."""

    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'wallet.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    _sqlite_savepoint_support(test_engine)
    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def db_session(engine: Engine) -> Iterator[Session]:
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    session = factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_razorpay() -> FakeRazorpayClient:
    return FakeRazorpayClient()


@pytest.fixture(autouse=True)
def override_dependencies(db_session: Session, fake_razorpay: FakeRazorpayClient) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_razorpay_client] = lambda: fake_razorpay
    yield
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_razorpay_client, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {os.environ['ADMIN_API_KEY']}"}


@pytest.fixture
def make_partner(db_session: Session) -> Callable[..., Partner]:
    def _factory(
        partner_id: int | None = None,
        *,
        name: str = "Test Partner",
        balance: str = "0.00",
        wallet_status: WalletStatus = WalletStatus.ACTIVE,
    ) -> Partner:
        partner = Partner(
            name=name,
            wallet_balance=Decimal(balance),
            wallet_status=wallet_status,
        )
        if partner_id is not None:
            partner.id = partner_id
        db_session.add(partner)
        db_session.commit()
        db_session.refresh(partner)
        return partner

    return _factory


def sign(body: bytes, secret: str | None = None) -> str:
    key = secret or os.environ["RAZORPAY_WEBHOOK_SECRET"]
    return hmac.new(key.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def signed() -> Callable[[dict[str, Any]], tuple[bytes, dict[str, str]]]:
    """Serialise a payload and return ``(body, headers)`` with a valid signature."""

    def _sign(payload: dict[str, Any]) -> tuple[bytes, dict[str, str]]:
        body = json.dumps(payload).encode()
        return body, {"Content-Type": "application/json", "X-Razorpay-Signature": sign(body)}

    return _sign


@pytest.fixture
def captured_event() -> Callable[..., dict[str, Any]]:
    """Build a ``payment.captured`` webhook payload."""

    def _build(
        *,
        payment_id: str = "pay_ABC123",
        order_id: str | None = "order_XYZ789",
        amount: int = 10000,
        currency: str = "INR",
        order_notes: Any = None,
        payment_notes: Any = None,
        include_order: bool = True,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "order_id": order_id,
                    "amount": amount,
                    "currency": currency,
                    "status": "captured",
                    "method": "upi",
                    "notes": [] if payment_notes is None else payment_notes,
                }
            }
        }
        if include_order and order_id is not None:
            payload["order"] = {
                "entity": {
                    "id": order_id,
                    "amount": amount,
                    "currency": currency,
                    "status": "paid",
                    "notes": [] if order_notes is None else order_notes,
                }
            }
        return {"entity": "event", "event": "payment.captured", "payload": payload}

    return _build
