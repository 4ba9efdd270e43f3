# marketmaster/services/paypal.py
"""
Платёжный виджет (PayPal) как внешний сервис.

Оркестратору апгрейда нужны два контракта:
  WidgetHost    (адрес сайта и подгрузка виджета);
  PaymentWidget (создание заказа и capture).

PayPalHost реализует оба поверх REST API: виджет считается загруженным,
когда получен OAuth-токен (он запрашивается в фоне при первом опросе).
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional, Protocol
from urllib.parse import urlparse

import httpx

from ..config import settings
from ..utils.log import get_logger

logger = get_logger(__name__)


class HostRestrictedError(Exception):
    """Окружение не отдаёт адрес страницы, без него виджет не работает."""


class PaymentProcessorError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class OrderRequest:
    package: str
    amount: Decimal
    currency: str
    description: str


@dataclass(frozen=True)
class CapturedPayment:
    order_id: str
    amount: Decimal
    currency: str
    status: str


class PaymentWidget(Protocol):
    async def create_order(self, request: OrderRequest) -> str: ...

    async def capture(self, order_id: str) -> CapturedPayment: ...


class WidgetHost(Protocol):
    def page_identity(self) -> str: ...

    def load_widget(self) -> Optional[PaymentWidget]: ...


# ---------- PayPal REST ----------

class PayPalClient:
    # запас до истечения токена, сек
    TOKEN_MARGIN_SEC = 60

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        api_base: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client_id = client_id if client_id is not None else settings.PAYPAL_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.PAYPAL_CLIENT_SECRET
        self.api_base = (api_base or settings.PAYPAL_API_BASE).rstrip("/")
        self.timeout = timeout or settings.PAYMENT_CALL_TIMEOUT_SEC
        self._transport = transport
        self._clock = clock
        self.access_token: str | None = None
        self.token_expires_at: float | None = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.api_base, timeout=self.timeout, transport=self._transport)

    def has_valid_token(self) -> bool:
        if not self.access_token:
            return False
        return self.token_expires_at is None or self._clock() < self.token_expires_at

    def drop_token(self) -> None:
        self.access_token = None
        self.token_expires_at = None

    async def authenticate(self) -> str:
        if not self.client_id or not self.client_secret:
            raise PaymentProcessorError("PayPal credentials are not configured")
        async with self._client() as c:
            try:
                r = await c.post(
                    "/v1/oauth2/token",
                    data={"grant_type": "client_credentials"},
                    auth=(self.client_id, self.client_secret),
                )
            except httpx.HTTPError as e:
                raise PaymentProcessorError(f"PayPal is unreachable: {e}") from e
        if r.status_code != 200:
            raise PaymentProcessorError("PayPal authentication failed", r.status_code)
        try:
            body = r.json()
            token = body["access_token"]
            expires_in = float(body.get("expires_in") or 0)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise PaymentProcessorError("Unexpected PayPal token response") from e

        self.access_token = token
        self.token_expires_at = (
            self._clock() + max(expires_in - self.TOKEN_MARGIN_SEC, 0) if expires_in else None
        )
        return token

    async def _send(self, path: str, payload: dict | None) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}
        async with self._client() as c:
            try:
                return await c.post(path, json=payload or {}, headers=headers)
            except httpx.HTTPError as e:
                raise PaymentProcessorError(f"PayPal is unreachable: {e}") from e

    async def _post(self, path: str, payload: dict | None = None) -> dict:
        if not self.has_valid_token():
            await self.authenticate()
        r = await self._send(path, payload)
        if r.status_code == 401:
            # токен отозван раньше срока: один повтор со свежим
            logger.info("PayPal token rejected, re-authenticating")
            self.drop_token()
            await self.authenticate()
            r = await self._send(path, payload)
            if r.status_code == 401:
                self.drop_token()

        if r.status_code >= 300:
            try:
                body = r.json()
                message = body.get("message") or body.get("name") or r.text
            except (ValueError, AttributeError):
                message = r.text
            raise PaymentProcessorError(message or "PayPal request failed", r.status_code)
        try:
            body = r.json()
        except ValueError as e:
            raise PaymentProcessorError("PayPal returned a malformed response", r.status_code) from e
        if not isinstance(body, dict):
            raise PaymentProcessorError("PayPal returned a malformed response", r.status_code)
        return body

    async def create_order(self, request: OrderRequest, return_url: str | None = None) -> str:
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "amount": {"currency_code": request.currency, "value": f"{request.amount:.2f}"},
                "description": request.description,
                "custom_id": request.package,
            }],
        }
        if return_url:
            payload["application_context"] = {"return_url": return_url, "cancel_url": return_url}
        body = await self._post("/v2/checkout/orders", payload)
        order_id = body.get("id")
        if not order_id or not isinstance(order_id, str):
            raise PaymentProcessorError("PayPal did not return an order id")
        return order_id

    async def capture(self, order_id: str) -> CapturedPayment:
        body = await self._post(f"/v2/checkout/orders/{order_id}/capture")
        status = body.get("status") or ""
        if status != "COMPLETED":
            raise PaymentProcessorError(f"Capture not completed (status={status or 'unknown'})")
        try:
            cap = body["purchase_units"][0]["payments"]["captures"][0]
            amount = Decimal(cap["amount"]["value"])
            currency = cap["amount"]["currency_code"]
        except (KeyError, IndexError, TypeError, ArithmeticError) as e:
            raise PaymentProcessorError("Unexpected capture response") from e
        return CapturedPayment(order_id=body.get("id") or order_id, amount=amount, currency=currency, status=status)


class PayPalWidget:
    def __init__(self, client: PayPalClient, return_url: str):
        self.client = client
        self.return_url = return_url

    async def create_order(self, request: OrderRequest) -> str:
        return await self.client.create_order(request, return_url=self.return_url)

    async def capture(self, order_id: str) -> CapturedPayment:
        return await self.client.capture(order_id)


class PayPalHost:
    def __init__(self, client: PayPalClient | None = None, public_base_url: str | None = None):
        self.client = client or PayPalClient()
        self.public_base_url = public_base_url if public_base_url is not None else settings.PUBLIC_BASE_URL
        self._loading: asyncio.Task | None = None

    def page_identity(self) -> str:
        host = urlparse(self.public_base_url or "").netloc
        if not host:
            raise HostRestrictedError("PUBLIC_BASE_URL is not set")
        return host

    def load_widget(self) -> Optional[PaymentWidget]:
        if self.client.has_valid_token():
            return PayPalWidget(self.client, f"{self.public_base_url.rstrip('/')}/screens/pricing")
        if self._loading is None:
            self._loading = asyncio.get_running_loop().create_task(self.client.authenticate())
        elif self._loading.done():
            if not self._loading.cancelled() and self._loading.exception() is not None:
                logger.warning("PayPal SDK load failed: %s", self._loading.exception())
            # следующий опрос: новая попытка
            self._loading = None
        return None
