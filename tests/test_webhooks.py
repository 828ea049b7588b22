"""Gateway webhooks settle orders the same way the checkout callback does"""

import json
import uuid

from app.models import Affiliate, Order, OrderStatus
from conftest import fetch, pay, place_order, sign_webhook, verify, webhook_body

async def post_webhook(client, body: bytes, signature=None):
    return await client.post(
        "/api/v1/payments/webhook",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Razorpay-Signature": signature if signature is not None else sign_webhook(body),
        },
    )

def captured_payment(gateway, created, amount=None):
    payment_id, signature = gateway.capture(created["gatewayOrder"]["id"], amount=amount)
    return gateway.payments[payment_id], signature

async def test_captured_webhook_pays_and_credits(client, session_factory, gateway, buyer, affiliate, sent_emails):
    created = await place_order(client, buyer, referral_code="SNOW20")
    payment, _ = captured_payment(gateway, created)

    response = await post_webhook(client, webhook_body("payment.captured", payment))

    assert response.status_code == 200
    assert response.json() == {
        "status": "processed",
        "event": "payment.captured",
        "outcome": "paid_commission_credited",
        "orderId": created["order"]["id"],
    }
    order = await fetch(session_factory, Order, uuid.UUID(created["order"]["id"]))
    assert order.status == OrderStatus.PAID
    assert order.gateway_payment_id == payment["id"]
    assert (await fetch(session_factory, Affiliate, affiliate.id)).sales_count == 1
    assert {mail["to"] for mail in sent_emails} == {"buyer@example.com", "partner@example.com"}

async def test_webhook_redelivery_is_harmless(client, session_factory, gateway, buyer, affiliate, sent_emails):
    created = await place_order(client, buyer, referral_code="SNOW20")
    payment, _ = captured_payment(gateway, created)
    body = webhook_body("payment.captured", payment)

    await post_webhook(client, body)
    again = await post_webhook(client, body)

    assert again.status_code == 200
    assert again.json()["status"] == "processed"
    assert (await fetch(session_factory, Affiliate, affiliate.id)).sales_count == 1
    assert len(sent_emails) == 2

async def test_webhook_and_callback_race_credits_once(client, session_factory, gateway, buyer, affiliate):
    created = await place_order(client, buyer, referral_code="SNOW20")
    payment, signature = captured_payment(gateway, created)

    await post_webhook(client, webhook_body("payment.captured", payment))
    callback = await verify(client, buyer, created, payment["id"], signature)

    assert callback.status_code == 200
    assert callback.json()["commissionCredited"] is False
    assert callback.json()["outcome"] == "paid_commission_credited"
    assert (await fetch(session_factory, Affiliate, affiliate.id)).total_commission == 5980

async def test_order_paid_event_uses_payment_entity(client, session_factory, gateway, buyer):
    created = await place_order(client, buyer, amount=500)
    payment, _ = captured_payment(gateway, created)
    body = json.dumps({
        "event": "order.paid",
        "payload": {
            "payment": {"entity": payment},
            "order": {"entity": {"id": created["gatewayOrder"]["id"], "status": "paid"}},
        },
    }).encode()

    response = await post_webhook(client, body)

    assert response.json()["outcome"] == "paid_no_affiliate"
    order = await fetch(session_factory, Order, uuid.UUID(created["order"]["id"]))
    assert order.status == OrderStatus.PAID

async def test_bad_webhook_signature(client, session_factory, gateway, buyer):
    created = await place_order(client, buyer, amount=500)
    payment, _ = captured_payment(gateway, created)

    response = await post_webhook(client, webhook_body("payment.captured", payment), signature="0" * 64)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_SIGNATURE"
    order = await fetch(session_factory, Order, uuid.UUID(created["order"]["id"]))
    assert order.status == OrderStatus.CREATED

async def test_missing_webhook_signature(client):
    response = await client.post("/api/v1/payments/webhook", content=b"{}")

    assert response.status_code == 400

async def test_malformed_webhook_payload(client):
    body = b"not json"

    response = await post_webhook(client, body)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_PAYLOAD"

async def test_unhandled_event_is_ignored(client):
    body = json.dumps({"event": "refund.created", "payload": {}}).encode()

    response = await post_webhook(client, body)

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert response.json()["event"] == "refund.created"

async def test_unknown_gateway_order_is_ignored(client):
    payment = {"id": "pay_x", "order_id": "order_missing", "amount": 500, "currency": "INR", "status": "captured"}

    response = await post_webhook(client, webhook_body("payment.captured", payment))

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"

async def test_mismatched_capture_is_ignored(client, session_factory, gateway, buyer):
    created = await place_order(client, buyer, amount=500)
    payment, _ = captured_payment(gateway, created, amount=1)

    response = await post_webhook(client, webhook_body("payment.captured", payment))

    assert response.json()["status"] == "ignored"
    assert response.json()["outcome"] == "verification_failed"
    order = await fetch(session_factory, Order, uuid.UUID(created["order"]["id"]))
    assert order.status == OrderStatus.CREATED

def declined_payment(created, payment_id="pay_declined"):
    return {
        "id": payment_id,
        "order_id": created["gatewayOrder"]["id"],
        "amount": created["order"]["amount"],
        "currency": "INR",
        "status": "failed",
        "error_description": "Card declined",
    }

async def test_failed_attempt_keeps_order_payable(client, session_factory, buyer):
    created = await place_order(client, buyer, amount=500)

    response = await post_webhook(client, webhook_body("payment.failed", declined_payment(created)))

    assert response.json()["status"] == "processed"
    assert response.json()["outcome"] == "payment_failed"
    order = await fetch(session_factory, Order, uuid.UUID(created["order"]["id"]))
    assert order.status == OrderStatus.CREATED
    assert order.failure_reason == "Card declined"
    assert order.failed_attempts == 1

async def test_retry_after_decline_is_paid_and_credited_once(client, session_factory, gateway, buyer, affiliate):
    created = await place_order(client, buyer, referral_code="SNOW20")
    await post_webhook(client, webhook_body("payment.failed", declined_payment(created)))
    await post_webhook(client, webhook_body("payment.failed", declined_payment(created, "pay_declined_2")))
    payment, signature = captured_payment(gateway, created)

    captured = await post_webhook(client, webhook_body("payment.captured", payment))
    callback = await verify(client, buyer, created, payment["id"], signature)

    assert captured.json()["status"] == "processed"
    assert captured.json()["outcome"] == "paid_commission_credited"
    assert callback.status_code == 200
    assert callback.json()["commissionCredited"] is False
    order = await fetch(session_factory, Order, uuid.UUID(created["order"]["id"]))
    assert order.status == OrderStatus.PAID
    assert order.gateway_payment_id == payment["id"]
    assert order.failed_attempts == 2
    partner = await fetch(session_factory, Affiliate, affiliate.id)
    assert partner.sales_count == 1
    assert partner.total_commission == 5980

async def test_retry_after_decline_via_callback(client, session_factory, gateway, buyer):
    created = await place_order(client, buyer, amount=500)
    await post_webhook(client, webhook_body("payment.failed", declined_payment(created)))

    response, payment_id, _ = await pay(client, gateway, buyer, created)

    assert response.status_code == 200
    assert response.json()["outcome"] == "paid_no_affiliate"
    order = await fetch(session_factory, Order, uuid.UUID(created["order"]["id"]))
    assert order.status == OrderStatus.PAID
    assert order.gateway_payment_id == payment_id

async def test_failure_after_payment_is_ignored(client, session_factory, gateway, buyer):
    created = await place_order(client, buyer, amount=500)
    await pay(client, gateway, buyer, created)
    payment = {"id": "pay_other", "order_id": created["gatewayOrder"]["id"], "status": "failed"}

    response = await post_webhook(client, webhook_body("payment.failed", payment))

    assert response.json()["outcome"] == "paid"
    order = await fetch(session_factory, Order, uuid.UUID(created["order"]["id"]))
    assert order.status == OrderStatus.PAID
