"""Shared fixtures: isolated SQLite database, fake gateway, captured email"""

import os

# Settings are read at import time, so the environment goes first
os.environ["DATABASE_URL"] = "sqlite:///./snowstorm-test.db"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_key_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test_webhook_secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["NOTIFICATION_BACKEND"] = "inline"
os.environ["VERIFY_PAYMENT_AMOUNT"] = "true"
os.environ["ORDER_EXPIRY_MINUTES"] = "30"
os.environ["ENVIRONMENT"] = "test"

import hashlib
import hmac
import json
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import pytest

from app.api.v1.payments.razorpay_client import (
    RazorpayClient,
    compute_signature,
    get_payment_gateway,
)
from app.core.database import (
    build_engine,
    build_session_factory,
    get_db,
    get_session_factory,
    init_db,
)
from app.core.exceptions import GatewayException
from app.core.security import SecurityUtils
from app.main import app as fastapi_app
from app.models import Affiliate, Ebook, EbookStatus, User, UserRole
from app.services.email_service import EmailService

KEY_SECRET = os.environ["RAZORPAY_KEY_SECRET"]
WEBHOOK_SECRET = os.environ["RAZORPAY_WEBHOOK_SECRET"]

class FakeGateway(RazorpayClient):
    """In-memory stand-in for the Razorpay API"""

    def __init__(self):
        super().__init__(key_id="rzp_test_key", key_secret=KEY_SECRET)
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.refunds: List[Dict[str, Any]] = []
        self.fail_create = False
        self.fail_fetch = False
        self.fail_refund = False

    async def create_order(self, amount, currency="INR", receipt=None, notes=None):
        if self.fail_create:
            raise GatewayException("Failed to create payment order: gateway down")
        order_id = f"order_{uuid.uuid4().hex[:14]}"
        order = {
            "id": order_id,
            "entity": "order",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "status": "created",
            "notes": notes or {},
        }
        self.orders[order_id] = order
        return order

    async def fetch_payment(self, payment_id):
        if self.fail_fetch:
            raise GatewayException("Failed to fetch payment: gateway down")
        if payment_id not in self.payments:
            raise GatewayException(f"Failed to fetch payment: {payment_id} not found")
        return self.payments[payment_id]

    async def create_refund(self, payment_id, amount=None, notes=None):
        if self.fail_refund:
            raise GatewayException("Failed to create refund: gateway down")
        refund = {"id": f"rfnd_{uuid.uuid4().hex[:14]}", "payment_id": payment_id, "amount": amount}
        self.refunds.append(refund)
        return refund

    def capture(
        self,
        gateway_order_id: str,
        amount: Optional[int] = None,
        payment_id: Optional[str] = None
    ):
        """Simulate the buyer paying; returns (payment_id, checkout signature)"""
        order = self.orders[gateway_order_id]
        payment_id = payment_id or f"pay_{uuid.uuid4().hex[:14]}"
        self.payments[payment_id] = {
            "id": payment_id,
            "entity": "payment",
            "order_id": gateway_order_id,
            "amount": order["amount"] if amount is None else amount,
            "currency": order["currency"],
            "status": "captured",
        }
        return payment_id, compute_signature(gateway_order_id, payment_id, KEY_SECRET)

def sign_webhook(body: bytes) -> str:
    return hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()

def webhook_body(event: str, payment: Dict[str, Any]) -> bytes:
    return json.dumps({
        "entity": "event",
        "event": event,
        "contains": ["payment"],
        "payload": {"payment": {"entity": payment}},
        "created_at": 1700000000,
    }).encode()

def auth_headers(user: User) -> Dict[str, str]:
    token = SecurityUtils.create_access_token({
        "sub": str(user.id),
        "role": user.role.value,
        "email": user.email,
        "name": user.name,
    })
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)

@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session

@pytest.fixture
def gateway():
    return FakeGateway()

@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Capture outgoing mail instead of talking to SMTP"""
    outbox: List[Dict[str, Any]] = []

    async def fake_send_email(self, to_email, subject, body, html_body=None,
                              attachments=None, reply_to=None):
        outbox.append({
            "to": to_email,
            "subject": subject,
            "body": body,
            "html": html_body,
            "attachments": attachments or [],
        })
        return True

    monkeypatch.setattr(EmailService, "send_email", fake_send_email)
    return outbox

@pytest.fixture
def app(session_factory, gateway):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_session_factory] = lambda: session_factory
    fastapi_app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()

@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

async def make_user(session_factory, role=UserRole.CUSTOMER, email=None, name="Reader") -> User:
    async with session_factory() as session:
        user = User(
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            name=name,
            role=role,
            password_hash=None,
            is_active=True,
        )
        session.add(user)
        await session.commit()
        return user

async def make_affiliate(
    session_factory,
    code="SNOW20",
    rate="0.2",
    email="partner@example.com",
    is_active=True,
    name="Partner"
) -> Affiliate:
    async with session_factory() as session:
        affiliate = Affiliate(
            code=code,
            name=name,
            email=email,
            commission_rate=Decimal(rate),
            clicks=0,
            sales_count=0,
            total_revenue=0,
            total_commission=0,
            total_paid=0,
            is_active=is_active,
        )
        session.add(affiliate)
        await session.commit()
        return affiliate

async def make_ebook(session_factory, price=29900, status=EbookStatus.PUBLISHED,
                     file_path=None, title="Snowstorm") -> Ebook:
    async with session_factory() as session:
        ebook = Ebook(
            title=title,
            description="A novel",
            price=price,
            currency="INR",
            status=status,
            file_path=file_path,
        )
        session.add(ebook)
        await session.commit()
        return ebook

async def fetch(session_factory, model, pk):
    """Read a row through a fresh session"""
    async with session_factory() as session:
        row = await session.get(model, pk)
        await session.commit()
        return row

@pytest.fixture
async def buyer(session_factory):
    return await make_user(session_factory, email="buyer@example.com", name="Asha")

@pytest.fixture
async def admin(session_factory):
    return await make_user(session_factory, role=UserRole.ADMIN, email="admin@example.com", name="Admin")

@pytest.fixture
async def affiliate(session_factory):
    return await make_affiliate(session_factory)

@pytest.fixture
async def ebook(session_factory):
    return await make_ebook(session_factory)

async def place_order(client, buyer, amount=29900, ebook=None, referral_code=None, headers=None):
    """Create an order through the API and return the response body"""
    payload = {"amount": amount}
    if ebook is not None:
        payload["productId"] = str(ebook.id)
    if referral_code is not None:
        payload["referralCode"] = referral_code
    response = await client.post(
        "/api/v1/orders/", json=payload, headers=headers or auth_headers(buyer)
    )
    assert response.status_code == 201, response.text
    return response.json()

async def verify(client, buyer, created, payment_id, signature, headers=None):
    return await client.post(
        "/api/v1/orders/verify",
        json={
            "orderId": created["order"]["id"],
            "gatewayOrderId": created["gatewayOrder"]["id"],
            "gatewayPaymentId": payment_id,
            "gatewaySignature": signature,
        },
        headers=headers or auth_headers(buyer),
    )

async def pay(client, gateway, buyer, created, amount=None):
    """Capture at the fake gateway, then post the checkout callback"""
    payment_id, signature = gateway.capture(created["gatewayOrder"]["id"], amount=amount)
    response = await verify(client, buyer, created, payment_id, signature)
    return response, payment_id, signature
