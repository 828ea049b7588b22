"""Referral cookie and code precedence"""

from starlette.requests import Request

from app.middleware.referral import clean_referral_code, resolve_referral_code
from conftest import auth_headers, make_affiliate

def make_request(cookie=None, state_code=None):
    headers = []
    if cookie:
        headers.append((b"cookie", f"aff_code={cookie}".encode()))
    scope = {"type": "http", "method": "GET", "path": "/", "headers": headers, "query_string": b""}
    request = Request(scope)
    if state_code:
        request.state.referral_code = state_code
    return request

def test_clean_referral_code():
    assert clean_referral_code("  SNOW20 ") == "SNOW20"
    assert clean_referral_code("bad code!") is None
    assert clean_referral_code("") is None
    assert clean_referral_code("x" * 51) is None

def test_explicit_code_wins():
    request = make_request(cookie="COOKIE", state_code="URL")
    assert resolve_referral_code(" BODY ", request) == "BODY"

def test_url_code_beats_cookie():
    assert resolve_referral_code(None, make_request(cookie="COOKIE", state_code="URL")) == "URL"

def test_cookie_is_the_fallback():
    assert resolve_referral_code("", make_request(cookie="COOKIE")) == "COOKIE"
    assert resolve_referral_code(None, make_request()) is None

async def test_aff_param_sets_cookie(client):
    response = await client.get("/health", params={"aff": "SNOW20"})

    assert response.status_code == 200
    cookie = response.headers["set-cookie"]
    assert cookie.startswith("aff_code=SNOW20")
    assert "HttpOnly" in cookie
    assert "Max-Age=2592000" in cookie

async def test_invalid_aff_param_is_ignored(client):
    response = await client.get("/health", params={"aff": "<script>"})

    assert "set-cookie" not in response.headers

async def test_cookie_attributes_the_order(client, session_factory, buyer, affiliate):
    response = await client.post(
        "/api/v1/orders/",
        json={"amount": 500},
        headers={**auth_headers(buyer), "Cookie": "aff_code=SNOW20"},
    )

    assert response.status_code == 201
    assert response.json()["order"]["referralCode"] == "SNOW20"
    assert response.json()["order"]["affiliateId"] == str(affiliate.id)

async def test_body_code_overrides_cookie(client, session_factory, buyer, affiliate):
    other = await make_affiliate(session_factory, code="OTHER", email="other@example.com")

    response = await client.post(
        "/api/v1/orders/",
        json={"amount": 500, "referralCode": "OTHER"},
        headers={**auth_headers(buyer), "Cookie": "aff_code=SNOW20"},
    )

    assert response.json()["order"]["affiliateId"] == str(other.id)

async def test_url_code_applies_to_same_request(client, buyer, affiliate):
    response = await client.post(
        "/api/v1/orders/",
        params={"aff": "SNOW20"},
        json={"amount": 500},
        headers=auth_headers(buyer),
    )

    assert response.json()["order"]["affiliateId"] == str(affiliate.id)
    assert "aff_code=SNOW20" in response.headers["set-cookie"]
