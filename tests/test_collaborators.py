"""Image host, object store and PayPal REST client against mocked HTTP."""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from marketmaster.errors import CollaboratorError
from marketmaster.services.imgbb import ImageHost
from marketmaster.services.paypal import (
    HostRestrictedError,
    OrderRequest,
    PaymentProcessorError,
    PayPalClient,
    PayPalHost,
)
from marketmaster.services.storage import ObjectStore


# ---------- imgbb ----------

@pytest.mark.asyncio
async def test_image_upload_returns_url():
    seen = {}

    def handler(request: httpx.Request):
        seen["key"] = request.url.params.get("key")
        seen["body"] = request.content
        return httpx.Response(200, json={"data": {"url": "https://i.ibb.co/x/photo.jpg"}})

    host = ImageHost(api_key="k1", upload_url="https://api.imgbb.test/1/upload",
                     transport=httpx.MockTransport(handler))
    url = await host.upload(b"\xff\xd8jpeg", "photo.jpg", "image/jpeg")

    assert url == "https://i.ibb.co/x/photo.jpg"
    assert seen["key"] == "k1"
    assert b'name="image"' in seen["body"]


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(400, json={"error": {"message": "Invalid API v1 key."}}),
    httpx.Response(503, text="busy"),
    httpx.Response(200, text="not json"),
])
async def test_image_upload_failures(response):
    calls = []

    def handler(request):
        calls.append(request)
        return response

    host = ImageHost(api_key="k1", upload_url="https://api.imgbb.test/1/upload",
                     transport=httpx.MockTransport(handler))
    with pytest.raises(CollaboratorError):
        await host.upload(b"data")
    # без повторов
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_image_upload_without_key():
    with pytest.raises(CollaboratorError):
        await ImageHost(api_key="").upload(b"data")


# ---------- object store ----------

def test_object_store_upload_and_url(tmp_path):
    objects = ObjectStore(tmp_path, "/media")
    path = objects.upload("avatars/u1.png", b"png")
    assert (tmp_path / "avatars" / "u1.png").read_bytes() == b"png"
    assert objects.get_public_url(path) == "/media/avatars/u1.png"


@pytest.mark.parametrize("path", ["../etc/passwd", "/abs.png", ""])
def test_object_store_rejects_bad_paths(tmp_path, path):
    with pytest.raises(CollaboratorError):
        ObjectStore(tmp_path).upload(path, b"x")


def test_object_store_refuses_overwrite(tmp_path):
    objects = ObjectStore(tmp_path)
    objects.upload("a.png", b"1")
    with pytest.raises(CollaboratorError):
        objects.upload("a.png", b"2")


# ---------- PayPal ----------

def _paypal(handler):
    return PayPalClient("cid", "secret", "https://paypal.test", timeout=5,
                        transport=httpx.MockTransport(handler))


def _paypal_handler(capture_status="COMPLETED", order_status=201):
    def handler(request: httpx.Request):
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        assert request.headers["Authorization"] == "Bearer tok"
        if request.url.path == "/v2/checkout/orders":
            body = json.loads(request.content)
            if order_status >= 300:
                return httpx.Response(order_status, json={"name": "UNPROCESSABLE_ENTITY", "message": "bad amount"})
            assert body["intent"] == "CAPTURE"
            assert body["purchase_units"][0]["amount"] == {"currency_code": "LKR", "value": "2500.00"}
            return httpx.Response(order_status, json={"id": "5O190127TN364715T", "status": "CREATED"})
        if request.url.path.endswith("/capture"):
            return httpx.Response(201, json={
                "id": "5O190127TN364715T",
                "status": capture_status,
                "purchase_units": [{"payments": {"captures": [
                    {"id": "3C679366HH908993F", "amount": {"currency_code": "LKR", "value": "2500.00"}},
                ]}}],
            })
        return httpx.Response(404)
    return handler


REQUEST = OrderRequest(package="silver", amount=Decimal(2500), currency="LKR",
                       description="MarketMaster Silver Package - 30 Days")


@pytest.mark.asyncio
async def test_paypal_order_and_capture():
    client = _paypal(_paypal_handler())
    await client.authenticate()
    order_id = await client.create_order(REQUEST)
    captured = await client.capture(order_id)

    assert order_id == "5O190127TN364715T"
    assert captured.amount == Decimal("2500.00")
    assert captured.currency == "LKR"
    assert captured.status == "COMPLETED"


@pytest.mark.asyncio
async def test_paypal_rejected_order():
    client = _paypal(_paypal_handler(order_status=422))
    await client.authenticate()
    with pytest.raises(PaymentProcessorError) as exc:
        await client.create_order(REQUEST)
    assert exc.value.status_code == 422


@pytest.mark.asyncio
async def test_paypal_incomplete_capture():
    client = _paypal(_paypal_handler(capture_status="PENDING"))
    await client.authenticate()
    with pytest.raises(PaymentProcessorError):
        await client.capture("5O190127TN364715T")


@pytest.mark.asyncio
async def test_paypal_missing_credentials():
    with pytest.raises(PaymentProcessorError):
        await PayPalClient("", "", "https://paypal.test").authenticate()


def test_paypal_host_needs_public_url():
    with pytest.raises(HostRestrictedError):
        PayPalHost(PayPalClient("cid", "secret"), public_base_url="").page_identity()
    assert PayPalHost(PayPalClient("cid", "secret"), "https://market.example").page_identity() == "market.example"


@pytest.mark.asyncio
async def test_paypal_host_widget_appears_after_token():
    host = PayPalHost(_paypal(_paypal_handler()), "https://market.example")
    assert host.load_widget() is None
    for _ in range(50):
        widget = host.load_widget()
        if widget is not None:
            break
        await asyncio.sleep(0.01)
    assert widget is not None
    assert await widget.create_order(REQUEST) == "5O190127TN364715T"


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(201, json={"status": "CREATED"}),
    httpx.Response(201, json={}),
    httpx.Response(201, text="<html>gateway</html>"),
    httpx.Response(201, json=["5O190127TN364715T"]),
])
async def test_paypal_malformed_order_response(response):
    def handler(request):
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        return response

    client = _paypal(handler)
    with pytest.raises(PaymentProcessorError):
        await client.create_order(REQUEST)


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _token_server(oauth_calls, valid):
    """OAuth выдаёт tok-1, tok-2, ...; orders отвечает 401 на всё, чего нет в valid."""
    def handler(request: httpx.Request):
        if request.url.path == "/v1/oauth2/token":
            oauth_calls.append(request)
            token = f"tok-{len(oauth_calls)}"
            valid.add(token)
            return httpx.Response(200, json={"access_token": token, "expires_in": 3600})
        if request.headers["Authorization"].removeprefix("Bearer ") not in valid:
            return httpx.Response(401, json={"name": "INVALID_TOKEN", "message": "token expired"})
        return httpx.Response(201, json={"id": "5O190127TN364715T", "status": "CREATED"})
    return handler


@pytest.mark.asyncio
async def test_paypal_token_is_refreshed_after_expiry():
    oauth_calls, valid = [], set()
    clock = _Clock()
    client = PayPalClient("cid", "secret", "https://paypal.test", timeout=5,
                          transport=httpx.MockTransport(_token_server(oauth_calls, valid)), clock=clock)

    await client.authenticate()
    assert client.has_valid_token()
    await client.create_order(REQUEST)
    assert len(oauth_calls) == 1

    clock.now += 3600
    assert not client.has_valid_token()
    assert await client.create_order(REQUEST) == "5O190127TN364715T"
    assert len(oauth_calls) == 2
    assert client.access_token == "tok-2"


@pytest.mark.asyncio
async def test_paypal_revoked_token_is_replaced_on_401():
    oauth_calls, valid = [], set()
    client = _paypal(_token_server(oauth_calls, valid))
    client.access_token = "STALE"
    host = PayPalHost(client, "https://market.example")

    # два разных захода на экран цен
    for _ in range(2):
        widget = host.load_widget()
        assert widget is not None
        assert await widget.create_order(REQUEST) == "5O190127TN364715T"
    assert len(oauth_calls) == 1


@pytest.mark.asyncio
async def test_paypal_host_reloads_widget_when_token_expires():
    oauth_calls, valid = [], set()
    clock = _Clock()
    client = PayPalClient("cid", "secret", "https://paypal.test", timeout=5,
                          transport=httpx.MockTransport(_token_server(oauth_calls, valid)), clock=clock)
    host = PayPalHost(client, "https://market.example")
    await client.authenticate()
    assert host.load_widget() is not None

    clock.now += 3600
    assert host.load_widget() is None
    widget = None
    for _ in range(50):
        widget = host.load_widget()
        if widget is not None:
            break
        await asyncio.sleep(0.01)
    assert widget is not None
    assert len(oauth_calls) == 2
