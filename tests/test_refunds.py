"""Refunding a paid order reverses its commission"""

import uuid

from sqlalchemy import select

from app.models import Affiliate, CommissionEntry, CommissionStatus, Order, OrderStatus
from conftest import auth_headers, fetch, pay, place_order

async def refund(client, user, created, reason=None):
    return await client.post(
        f"/api/v1/orders/{created['order']['id']}/refund",
        json={"reason": reason} if reason else None,
        headers=auth_headers(user),
    )

async def test_refund_reverses_commission(client, session_factory, gateway, buyer, admin, affiliate):
    created = await place_order(client, buyer, referral_code="SNOW20")
    _, payment_id, _ = await pay(client, gateway, buyer, created)

    response = await refund(client, admin, created, reason="duplicate purchase")

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "refunded"
    assert response.json()["refundedAt"] is not None
    assert gateway.refunds == [
        {"id": gateway.refunds[0]["id"], "payment_id": payment_id, "amount": 29900}
    ]

    order = await fetch(session_factory, Order, uuid.UUID(created["order"]["id"]))
    assert order.refund_reference == gateway.refunds[0]["id"]
    partner = await fetch(session_factory, Affiliate, affiliate.id)
    assert partner.sales_count == 0
    assert partner.total_revenue == 0
    assert partner.total_commission == 0
    async with session_factory() as db:
        entry = await db.scalar(select(CommissionEntry).where(CommissionEntry.order_id == order.id))
        await db.commit()
    assert entry.status == CommissionStatus.REVERSED

async def test_refund_is_admin_only(client, gateway, buyer):
    created = await place_order(client, buyer, amount=500)
    await pay(client, gateway, buyer, created)

    response = await refund(client, buyer, created)

    assert response.status_code == 403
    assert gateway.refunds == []

async def test_unpaid_order_cannot_be_refunded(client, gateway, buyer, admin):
    created = await place_order(client, buyer, amount=500)

    response = await refund(client, admin, created)

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"
    assert gateway.refunds == []

async def test_second_refund_is_rejected(client, gateway, buyer, admin):
    created = await place_order(client, buyer, amount=500)
    await pay(client, gateway, buyer, created)
    await refund(client, admin, created)

    response = await refund(client, admin, created)

    assert response.status_code == 409
    assert len(gateway.refunds) == 1

async def test_gateway_refund_failure_rolls_back(client, session_factory, gateway, buyer, admin, affiliate):
    created = await place_order(client, buyer, referral_code="SNOW20")
    await pay(client, gateway, buyer, created)
    gateway.fail_refund = True

    response = await refund(client, admin, created)

    assert response.status_code == 502
    order = await fetch(session_factory, Order, uuid.UUID(created["order"]["id"]))
    assert order.status == OrderStatus.PAID
    assert (await fetch(session_factory, Affiliate, affiliate.id)).sales_count == 1
