"""Post-payment emails: receipt, affiliate alert and failure isolation"""

import threading
import uuid
from types import SimpleNamespace

import pytest
from fastapi import BackgroundTasks

from app.core.config import settings
from app.models import Ebook, Order, OrderStatus
from app.services.email_service import EmailService
from app.services.notification_dispatcher import (
    AFFILIATE_ALERT,
    BUYER_RECEIPT,
    NotificationDispatcher,
    schedule_payment_notifications,
)
from conftest import fetch, make_affiliate, make_ebook, pay, place_order

@pytest.fixture
def asset_dir(tmp_path, monkeypatch):
    root = tmp_path / "assets"
    root.mkdir()
    (root / "snowstorm.pdf").write_bytes(b"%PDF-1.4 snowstorm")
    (tmp_path / "secret.txt").write_text("not for buyers")
    monkeypatch.setattr(settings, "EBOOK_ASSET_DIR", str(root))
    return root

async def test_receipt_and_alert_after_payment(client, session_factory, gateway, buyer, affiliate, asset_dir, sent_emails):
    ebook = await make_ebook(session_factory, file_path="snowstorm.pdf")
    created = await place_order(client, buyer, ebook=ebook, referral_code="SNOW20")

    response, payment_id, _ = await pay(client, gateway, buyer, created)

    assert response.status_code == 200
    receipt, alert = sorted(sent_emails, key=lambda mail: mail["to"])
    assert receipt["to"] == "buyer@example.com"
    assert receipt["subject"] == "Your receipt for Snowstorm"
    assert "₹299.00" in receipt["body"]
    assert payment_id in receipt["html"]
    assert [a["filename"] for a in receipt["attachments"]] == ["snowstorm.pdf"]
    assert receipt["attachments"][0]["content_type"] == "application/pdf"

    assert alert["to"] == "partner@example.com"
    assert alert["subject"] == "New sale: you earned ₹59.80"
    assert "SNOW20" in alert["body"]
    assert "Asha" in alert["html"]

async def test_no_alert_without_affiliate(client, gateway, buyer, sent_emails):
    created = await place_order(client, buyer, amount=500)

    await pay(client, gateway, buyer, created)

    assert [mail["to"] for mail in sent_emails] == ["buyer@example.com"]
    assert sent_emails[0]["attachments"] == []

async def test_email_failure_does_not_fail_payment(client, session_factory, gateway, buyer, affiliate, monkeypatch):
    async def broken_send(self, *args, **kwargs):
        raise RuntimeError("SMTP down")

    monkeypatch.setattr(EmailService, "send_email", broken_send)
    created = await place_order(client, buyer, referral_code="SNOW20")

    response, _, _ = await pay(client, gateway, buyer, created)

    assert response.status_code == 200
    assert response.json()["outcome"] == "paid_commission_credited"
    order = await fetch(session_factory, Order, uuid.UUID(created["order"]["id"]))
    assert order.status == OrderStatus.PAID

async def test_dispatcher_reports_per_channel(client, session_factory, gateway, buyer, affiliate, monkeypatch):
    created = await place_order(client, buyer, referral_code="SNOW20")
    await pay(client, gateway, buyer, created)

    async def only_buyer_delivers(self, to_email, *args, **kwargs):
        return to_email == "buyer@example.com"

    monkeypatch.setattr(EmailService, "send_email", only_buyer_delivers)
    dispatcher = NotificationDispatcher(session_factory=session_factory)

    results = await dispatcher.dispatch_payment_notifications(uuid.UUID(created["order"]["id"]))

    assert results == {BUYER_RECEIPT: True, AFFILIATE_ALERT: False}

async def test_dispatcher_respects_channels(client, session_factory, gateway, buyer, affiliate, sent_emails):
    created = await place_order(client, buyer, referral_code="SNOW20")
    await pay(client, gateway, buyer, created)
    sent_emails.clear()

    dispatcher = NotificationDispatcher(session_factory=session_factory)
    results = await dispatcher.dispatch_payment_notifications(
        uuid.UUID(created["order"]["id"]), channels=[AFFILIATE_ALERT]
    )

    assert results == {AFFILIATE_ALERT: True}
    assert [mail["to"] for mail in sent_emails] == ["partner@example.com"]

async def test_affiliate_without_email_is_skipped(client, session_factory, gateway, buyer):
    await make_affiliate(session_factory, code="QUIET", email=None)
    created = await place_order(client, buyer, referral_code="QUIET")
    await pay(client, gateway, buyer, created)

    dispatcher = NotificationDispatcher(session_factory=session_factory)
    results = await dispatcher.dispatch_payment_notifications(uuid.UUID(created["order"]["id"]))

    assert results == {BUYER_RECEIPT: True}

async def test_unpaid_or_missing_orders_send_nothing(client, session_factory, buyer, sent_emails):
    created = await place_order(client, buyer, amount=500)
    dispatcher = NotificationDispatcher(session_factory=session_factory)

    assert await dispatcher.dispatch_payment_notifications(uuid.UUID(created["order"]["id"])) == {}
    assert await dispatcher.dispatch_payment_notifications(uuid.uuid4()) == {}
    assert sent_emails == []

async def test_attachment_stays_inside_asset_dir(asset_dir):
    dispatcher = NotificationDispatcher()

    assert await dispatcher.ebook_attachment(Ebook(id=uuid.uuid4(), file_path="../secret.txt")) is None
    assert await dispatcher.ebook_attachment(Ebook(id=uuid.uuid4(), file_path="missing.pdf")) is None
    assert await dispatcher.ebook_attachment(Ebook(id=uuid.uuid4(), file_path=None)) is None
    attachment = await dispatcher.ebook_attachment(Ebook(id=uuid.uuid4(), file_path="snowstorm.pdf"))
    assert attachment["content"] == b"%PDF-1.4 snowstorm"

async def test_attachment_is_read_off_the_event_loop(asset_dir, monkeypatch):
    threads = []
    read_attachment = NotificationDispatcher._read_attachment

    def tracking_read(self, ebook):
        threads.append(threading.get_ident())
        return read_attachment(self, ebook)

    monkeypatch.setattr(NotificationDispatcher, "_read_attachment", tracking_read)

    attachment = await NotificationDispatcher().ebook_attachment(
        Ebook(id=uuid.uuid4(), file_path="snowstorm.pdf")
    )

    assert attachment["filename"] == "snowstorm.pdf"
    assert threads and threads[0] != threading.get_ident()

def test_inline_backend_uses_background_tasks():
    background_tasks = BackgroundTasks()

    schedule_payment_notifications(background_tasks, uuid.uuid4())

    assert len(background_tasks.tasks) == 1

def test_celery_backend_queues_task(monkeypatch):
    from app.tasks import email_tasks

    queued = []
    monkeypatch.setattr(settings, "NOTIFICATION_BACKEND", "celery")
    monkeypatch.setattr(email_tasks, "send_payment_notifications", SimpleNamespace(delay=queued.append))
    background_tasks = BackgroundTasks()
    order_id = uuid.uuid4()

    schedule_payment_notifications(background_tasks, order_id)

    assert queued == [str(order_id)]
    assert background_tasks.tasks == []
