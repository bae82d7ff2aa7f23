import hashlib
import hmac
import os
from datetime import timedelta
from decimal import Decimal

import pytest
import requests
from sqlalchemy import select

from partner_wallet.config import get_settings
from partner_wallet.models import (
    ReferenceType,
    TransactionStatus,
    TransactionType,
    WalletStatus,
    WalletTransaction,
)
from partner_wallet.services.wallet_ledger import credit_captured_payment
from partner_wallet.services.wallet_store import WalletStore
from partner_wallet.utils.time import utcnow


def _checkout_signature(order_id: str, payment_id: str) -> str:
    key = os.environ["RAZORPAY_KEY_SECRET"].encode()
    return hmac.new(key, f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


@pytest.mark.anyio
async def test_wallet_routes_require_api_key(client, make_partner):
    make_partner(1)

    missing = await client.get("/partners/1/wallet")
    wrong = await client.get("/partners/1/wallet", headers={"X-API-Key": "nope"})

    assert missing.status_code == 401
    assert missing.json()["error"]["code"] == "NO_API_KEY"
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "INVALID_API_KEY"


@pytest.mark.anyio
async def test_api_key_header_is_accepted(client, make_partner):
    make_partner(1)

    response = await client.get("/partners/1/wallet", headers={"X-API-Key": os.environ["ADMIN_API_KEY"]})

    assert response.status_code == 200


@pytest.mark.anyio
async def test_unconfigured_api_key_is_service_unavailable(client, admin_headers, monkeypatch):
    monkeypatch.setattr(get_settings(), "ADMIN_API_KEY", None)

    response = await client.get("/partners/1/wallet", headers=admin_headers)

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "API_KEY_NOT_CONFIGURED"


@pytest.mark.anyio
async def test_wallet_summary(client, make_partner, admin_headers):
    make_partner(5, name="Acme Rentals", balance="50.50")

    response = await client.get("/partners/5/wallet", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["partner_id"] == 5
    assert body["partner_name"] == "Acme Rentals"
    assert Decimal(body["wallet_balance"]) == Decimal("50.50")
    assert body["wallet_status"] == "active"


@pytest.mark.anyio
async def test_wallet_summary_unknown_partner(client, admin_headers):
    response = await client.get("/partners/404/wallet", headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "PARTNER_NOT_FOUND"


@pytest.mark.anyio
async def test_transactions_are_paginated_newest_first(client, db_session, make_partner, admin_headers):
    make_partner(5)
    store = WalletStore(db_session)
    for index in range(3):
        credit_captured_payment(
            store,
            partner_id=5,
            payment_id=f"pay_{index}",
            amount_minor=1000,
            currency="INR",
        )

    first = await client.get("/partners/5/wallet/transactions?limit=2", headers=admin_headers)
    second = await client.get("/partners/5/wallet/transactions?limit=2&page=2", headers=admin_headers)

    assert first.status_code == 200
    page_one = first.json()
    assert page_one["total"] == 3
    assert page_one["total_pages"] == 2
    assert [item["reference_id"] for item in page_one["items"]] == ["pay_2", "pay_1"]
    assert page_one["items"][0]["metadata"]["source"] == "webhook"
    assert [item["reference_id"] for item in second.json()["items"]] == ["pay_0"]


@pytest.mark.anyio
async def test_transactions_filter_by_type_and_status(client, make_partner, admin_headers):
    make_partner(5, balance="100.00")
    await client.post(
        "/partners/5/wallet/adjustments",
        json={"amount": "10.00", "transaction_type": "debit"},
        headers=admin_headers,
    )
    await client.post(
        "/partners/5/wallet/adjustments",
        json={"amount": "5.00", "transaction_type": "credit"},
        headers=admin_headers,
    )

    debits = await client.get(
        "/partners/5/wallet/transactions?transaction_type=debit&status=completed",
        headers=admin_headers,
    )

    body = debits.json()
    assert body["total"] == 1
    assert body["items"][0]["transaction_type"] == "debit"


@pytest.mark.anyio
async def test_admin_credit_and_debit(client, db_session, make_partner, admin_headers):
    partner = make_partner(5, balance="20.00")

    credit = await client.post(
        "/partners/5/wallet/adjustments",
        json={"amount": "30.00", "transaction_type": "credit", "description": "Goodwill"},
        headers=admin_headers,
    )
    debit = await client.post(
        "/partners/5/wallet/adjustments",
        json={"amount": "15.25", "transaction_type": "debit"},
        headers=admin_headers,
    )

    assert credit.status_code == 201
    credit_body = credit.json()
    assert Decimal(credit_body["wallet_balance"]) == Decimal("50.00")
    assert credit_body["transaction"]["description"] == "Goodwill"
    assert Decimal(credit_body["transaction"]["balance_before"]) == Decimal("20.00")
    assert credit_body["replayed"] is False

    assert debit.status_code == 201
    debit_body = debit.json()
    assert Decimal(debit_body["wallet_balance"]) == Decimal("34.75")
    assert debit_body["transaction"]["description"] == "Admin debit transaction"
    assert debit_body["transaction"]["metadata"] == {"created_by": "admin"}

    db_session.refresh(partner)
    assert partner.wallet_balance == Decimal("34.75")


@pytest.mark.anyio
async def test_absolute_adjustment_sets_balance(client, make_partner, admin_headers):
    make_partner(5, balance="80.00")

    response = await client.post(
        "/partners/5/wallet/adjustments",
        json={"amount": "12.00", "transaction_type": "adjustment"},
        headers=admin_headers,
    )

    body = response.json()
    assert Decimal(body["wallet_balance"]) == Decimal("12.00")
    assert Decimal(body["transaction"]["balance_before"]) == Decimal("80.00")


@pytest.mark.anyio
async def test_debit_beyond_balance_is_rejected(client, db_session, make_partner, admin_headers):
    partner = make_partner(5, balance="10.00")

    response = await client.post(
        "/partners/5/wallet/adjustments",
        json={"amount": "10.01", "transaction_type": "debit"},
        headers=admin_headers,
    )

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "INSUFFICIENT_BALANCE"
    assert error["details"]["requested"] == "10.01"
    db_session.refresh(partner)
    assert partner.wallet_balance == Decimal("10.00")
    assert list(db_session.scalars(select(WalletTransaction))) == []


@pytest.mark.anyio
async def test_adjustment_rejects_non_positive_amount(client, make_partner, admin_headers):
    make_partner(5)

    response = await client.post(
        "/partners/5/wallet/adjustments",
        json={"amount": "0", "transaction_type": "credit"},
        headers=admin_headers,
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.anyio
async def test_adjustment_idempotency_key_replays(client, db_session, make_partner, admin_headers):
    partner = make_partner(5)
    headers = {**admin_headers, "Idempotency-Key": "adj-001"}
    payload = {"amount": "25.00", "transaction_type": "credit"}

    first = await client.post("/partners/5/wallet/adjustments", json=payload, headers=headers)
    second = await client.post("/partners/5/wallet/adjustments", json=payload, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.json()["replayed"] is True
    assert second.json()["transaction"]["id"] == first.json()["transaction"]["id"]
    db_session.refresh(partner)
    assert partner.wallet_balance == Decimal("25.00")
    [txn] = db_session.scalars(select(WalletTransaction)).all()
    assert txn.reference_type == ReferenceType.ADMIN_ADJUSTMENT


@pytest.mark.anyio
async def test_idempotency_key_reused_for_other_partner(client, make_partner, admin_headers):
    make_partner(5)
    make_partner(6)
    headers = {**admin_headers, "Idempotency-Key": "adj-002"}
    payload = {"amount": "1.00", "transaction_type": "credit"}

    await client.post("/partners/5/wallet/adjustments", json=payload, headers=headers)
    response = await client.post("/partners/6/wallet/adjustments", json=payload, headers=headers)

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "IDEMPOTENCY_KEY_CONFLICT"


@pytest.mark.anyio
async def test_payment_status(client, db_session, make_partner, admin_headers):
    make_partner(5)
    credit_captured_payment(
        WalletStore(db_session),
        partner_id=5,
        payment_id="pay_STATUS",
        amount_minor=2500,
        currency="INR",
    )

    found = await client.get("/partners/5/payments/pay_STATUS/status", headers=admin_headers)
    missing = await client.get("/partners/5/payments/pay_OTHER/status", headers=admin_headers)

    assert found.json()["status"] == "completed"
    assert Decimal(found.json()["amount"]) == Decimal("25.00")
    assert missing.json()["status"] == "not_found"


@pytest.mark.anyio
async def test_create_topup_order(client, make_partner, admin_headers, fake_razorpay):
    make_partner(5, name="Acme Rentals")

    response = await client.post(
        "/razorpay/orders",
        json={"partner_id": 5, "amount": "499.99", "customer": {"email": "ops@acme.test"}},
        headers=admin_headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["order_id"] == "order_0001"
    assert body["amount"] == 49999
    assert body["currency"] == "INR"
    assert body["key_id"] == "rzp_test_partnerwallet"
    assert body["receipt"].startswith("RCPT_")
    [order] = fake_razorpay.created_orders
    assert order["notes"]["partner_id"] == "5"
    assert order["notes"]["customer_name"] == "Acme Rentals"
    assert order["notes"]["customer_email"] == "ops@acme.test"


@pytest.mark.anyio
async def test_create_topup_order_requires_active_wallet(client, make_partner, admin_headers):
    make_partner(5, wallet_status=WalletStatus.FROZEN)

    response = await client.post("/razorpay/orders", json={"partner_id": 5, "amount": "100"}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "WALLET_NOT_ACTIVE"


@pytest.mark.anyio
async def test_create_topup_order_provider_failure(client, make_partner, admin_headers, fake_razorpay):
    make_partner(5)
    fake_razorpay.create_order_error = requests.ConnectionError("down")

    response = await client.post("/razorpay/orders", json={"partner_id": 5, "amount": "100"}, headers=admin_headers)

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "RAZORPAY_ORDER_FAILED"


def _captured_payment(partner_id: str = "5", status: str = "captured") -> dict:
    return {
        "id": "pay_VERIFY1",
        "order_id": "order_VERIFY1",
        "amount": 50000,
        "currency": "INR",
        "status": status,
        "method": "card",
        "notes": {"partner_id": partner_id},
    }


def _verification(partner_id: int = 5, signature: str | None = None) -> dict:
    return {
        "razorpay_order_id": "order_VERIFY1",
        "razorpay_payment_id": "pay_VERIFY1",
        "razorpay_signature": signature or _checkout_signature("order_VERIFY1", "pay_VERIFY1"),
        "partner_id": partner_id,
    }


@pytest.mark.anyio
async def test_verify_payment_credits_once(client, db_session, make_partner, admin_headers, fake_razorpay):
    partner = make_partner(5, balance="1.00")
    fake_razorpay.payments["pay_VERIFY1"] = _captured_payment()

    first = await client.post("/razorpay/verify-payment", json=_verification(), headers=admin_headers)
    second = await client.post("/razorpay/verify-payment", json=_verification(), headers=admin_headers)

    assert first.status_code == 200
    assert first.json()["outcome"] == "credited"
    assert Decimal(first.json()["balance_after"]) == Decimal("501.00")
    assert second.json()["outcome"] == "duplicate"
    db_session.refresh(partner)
    assert partner.wallet_balance == Decimal("501.00")
    [txn] = db_session.scalars(select(WalletTransaction)).all()
    assert txn.transaction_type == TransactionType.CREDIT
    assert txn.metadata_json["source"] == "checkout_verification"


@pytest.mark.anyio
async def test_webhook_after_verification_is_duplicate(
    client, db_session, make_partner, admin_headers, fake_razorpay, signed, captured_event
):
    partner = make_partner(5)
    fake_razorpay.payments["pay_VERIFY1"] = _captured_payment()
    await client.post("/razorpay/verify-payment", json=_verification(), headers=admin_headers)

    body, headers = signed(
        captured_event(
            payment_id="pay_VERIFY1",
            order_id="order_VERIFY1",
            amount=50000,
            order_notes={"partner_id": "5"},
        )
    )
    response = await client.post("/api/payment-webhook", content=body, headers=headers)

    assert response.json()["outcome"] == "duplicate"
    db_session.refresh(partner)
    assert partner.wallet_balance == Decimal("500.00")


@pytest.mark.anyio
async def test_verify_payment_rejects_bad_signature(client, make_partner, admin_headers, fake_razorpay):
    make_partner(5)
    fake_razorpay.payments["pay_VERIFY1"] = _captured_payment()

    response = await client.post(
        "/razorpay/verify-payment",
        json=_verification(signature="0" * 64),
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_SIGNATURE_INVALID"


@pytest.mark.anyio
async def test_verify_payment_rejects_uncaptured(client, make_partner, admin_headers, fake_razorpay):
    make_partner(5)
    fake_razorpay.payments["pay_VERIFY1"] = _captured_payment(status="authorized")

    response = await client.post("/razorpay/verify-payment", json=_verification(), headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "PAYMENT_NOT_CAPTURED"


@pytest.mark.anyio
async def test_verify_payment_partner_mismatch(client, db_session, make_partner, admin_headers, fake_razorpay):
    make_partner(5)
    make_partner(6)
    fake_razorpay.payments["pay_VERIFY1"] = _captured_payment(partner_id="5")

    response = await client.post("/razorpay/verify-payment", json=_verification(partner_id=6), headers=admin_headers)

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "PARTNER_MISMATCH"
    assert list(db_session.scalars(select(WalletTransaction))) == []


@pytest.mark.anyio
async def test_partner_wallet_overview_requires_api_key(client):
    listing = await client.get("/partners/wallets")
    stats = await client.get("/partners/wallets/stats")

    assert listing.status_code == 401
    assert stats.status_code == 401


@pytest.mark.anyio
async def test_partner_wallet_overview_orders_by_balance(client, make_partner, admin_headers):
    make_partner(1, name="Acme Travels", balance="50.00")
    make_partner(2, name="Blue Tours", balance="500.00")
    make_partner(3, name="acme foods", balance="50.00")

    response = await client.get("/partners/wallets", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert [item["partner_id"] for item in body["items"]] == [2, 1, 3]
    assert body["total"] == 3
    assert body["total_pages"] == 1
    assert body["items"][0]["partner_name"] == "Blue Tours"
    assert Decimal(body["items"][0]["wallet_balance"]) == Decimal("500.00")


@pytest.mark.anyio
async def test_partner_wallet_overview_filters(client, make_partner, admin_headers):
    make_partner(1, name="Acme Travels", balance="50.00")
    make_partner(2, name="Blue Tours", balance="500.00", wallet_status=WalletStatus.SUSPENDED)
    make_partner(3, name="acme foods", balance="5.00")

    by_name = await client.get("/partners/wallets", params={"search": "ACME"}, headers=admin_headers)
    by_status = await client.get("/partners/wallets", params={"wallet_status": "suspended"}, headers=admin_headers)
    by_range = await client.get(
        "/partners/wallets",
        params={"min_balance": "10", "max_balance": "100"},
        headers=admin_headers,
    )

    assert [item["partner_id"] for item in by_name.json()["items"]] == [1, 3]
    assert by_name.json()["total"] == 2
    assert [item["partner_id"] for item in by_status.json()["items"]] == [2]
    assert [item["partner_id"] for item in by_range.json()["items"]] == [1]
    assert by_range.json()["total"] == 1


@pytest.mark.anyio
async def test_partner_wallet_overview_paginates(client, make_partner, admin_headers):
    for partner_id in range(1, 6):
        make_partner(partner_id, balance=f"{partner_id}.00")

    response = await client.get("/partners/wallets", params={"page": 2, "limit": 2}, headers=admin_headers)
    too_large = await client.get("/partners/wallets", params={"limit": 101}, headers=admin_headers)

    body = response.json()
    assert [item["partner_id"] for item in body["items"]] == [3, 2]
    assert body["total"] == 5
    assert body["total_pages"] == 3
    assert too_large.status_code == 422


@pytest.mark.anyio
async def test_wallet_stats_with_no_partners(client, admin_headers):
    response = await client.get("/partners/wallets/stats", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["overview"]["total_partners"] == 0
    assert Decimal(body["overview"]["average_balance"]) == Decimal("0")
    assert body["status_breakdown"] == {"active": 0, "suspended": 0, "frozen": 0, "closed": 0}
    assert body["top_partners"] == []
    assert body["recent_activity"]["total_transactions"] == 0


@pytest.mark.anyio
async def test_wallet_stats(client, db_session, make_partner, admin_headers):
    make_partner(1, name="Zero", balance="0.00")
    make_partner(2, name="Whale", balance="20000.00")
    make_partner(3, name="Regular", balance="100.00", wallet_status=WalletStatus.FROZEN)
    db_session.add_all(
        [
            WalletTransaction(
                partner_id=3,
                transaction_type=TransactionType.CREDIT,
                amount=Decimal("150.00"),
                balance_before=Decimal("0.00"),
                balance_after=Decimal("150.00"),
                status=TransactionStatus.COMPLETED,
            ),
            WalletTransaction(
                partner_id=3,
                transaction_type=TransactionType.DEBIT,
                amount=Decimal("50.00"),
                balance_before=Decimal("150.00"),
                balance_after=Decimal("100.00"),
                status=TransactionStatus.COMPLETED,
            ),
            WalletTransaction(
                partner_id=3,
                transaction_type=TransactionType.ADJUSTMENT,
                amount=Decimal("100.00"),
                balance_before=Decimal("100.00"),
                balance_after=Decimal("100.00"),
                status=TransactionStatus.COMPLETED,
            ),
            WalletTransaction(
                partner_id=3,
                transaction_type=TransactionType.CREDIT,
                amount=Decimal("999.00"),
                balance_before=Decimal("0.00"),
                balance_after=Decimal("999.00"),
                status=TransactionStatus.FAILED,
            ),
            WalletTransaction(
                partner_id=2,
                transaction_type=TransactionType.CREDIT,
                amount=Decimal("777.00"),
                balance_before=Decimal("0.00"),
                balance_after=Decimal("777.00"),
                status=TransactionStatus.COMPLETED,
                created_at=utcnow() - timedelta(days=30),
            ),
        ]
    )
    db_session.commit()

    response = await client.get("/partners/wallets/stats", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["overview"]["total_partners"] == 3
    assert Decimal(body["overview"]["total_wallet_balance"]) == Decimal("20100.00")
    assert Decimal(body["overview"]["average_balance"]) == Decimal("6700.00")
    assert body["status_breakdown"] == {"active": 2, "suspended": 0, "frozen": 1, "closed": 0}
    assert body["balance_distribution"] == {"zero_balance": 1, "high_balance": 1, "normal_balance": 1}
    activity = body["recent_activity"]
    assert activity["period_days"] == 7
    assert activity["total_transactions"] == 3
    assert Decimal(activity["credit_amount"]) == Decimal("150.00")
    assert Decimal(activity["debit_amount"]) == Decimal("50.00")
    assert Decimal(activity["net_amount"]) == Decimal("100.00")
    assert [p["partner_name"] for p in body["top_partners"]] == ["Whale", "Regular", "Zero"]
