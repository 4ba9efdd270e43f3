# marketmaster/services/upgrade.py
"""
Покупка пакета (апгрейд продавца).

Состояния:
    idle -> widget_loading -> widget_ready -> order_creating ->
    awaiting_capture -> capturing -> persisting -> completed
и поглощающее failed(reason), достижимое из любого незавершённого.

После capture деньги уже списаны: если запись платежа или обновление
пакета не прошли, откатывать нечего, отдаём failed(partial_persistence)
с id заказа, чтобы поддержка свела всё вручную.
"""
from __future__ import annotations

import asyncio
import datetime as dt
import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Dict, Optional

from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..errors import CollaboratorError, FailureReason, MarketError, PaymentFlowError, ValidationError
from ..utils.clock import utcnow
from ..utils.log import get_logger
from .auth import SIGNED_OUT
from .entitlement import PackageKind, SellerEntitlement, get_package
from .paypal import (
    CapturedPayment, HostRestrictedError, OrderRequest, PaymentProcessorError,
    PaymentWidget, WidgetHost,
)
from .polling import PollCancelled, Poller, PollTimeout
from .store import RecordStore

logger = get_logger(__name__)


class UpgradeState(str, enum.Enum):
    IDLE = "idle"
    WIDGET_LOADING = "widget_loading"
    WIDGET_READY = "widget_ready"
    ORDER_CREATING = "order_creating"
    AWAITING_CAPTURE = "awaiting_capture"
    CAPTURING = "capturing"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = {UpgradeState.COMPLETED, UpgradeState.FAILED}


class OrderStatus(str, enum.Enum):
    INITIATING = "initiating"
    AWAITING_CAPTURE = "awaiting_capture"
    CAPTURED = "captured"
    FAILED = "failed"


@dataclass
class UpgradeOrder:
    package: PackageKind
    amount: Decimal
    currency: str
    order_id: str | None = None
    status: OrderStatus = OrderStatus.INITIATING

    def to_dict(self) -> dict:
        return {
            "package": self.package.value,
            "amount": float(self.amount),
            "currency": self.currency,
            "order_id": self.order_id,
            "status": self.status.value,
        }


class InvalidTransition(MarketError):
    code = "invalid_state"
    status_code = 409


Listener = Callable[["UpgradeOrchestrator"], Awaitable[None]]


class UpgradeOrchestrator:
    def __init__(
        self,
        user_id: str,
        host: WidgetHost,
        store: RecordStore,
        *,
        poll_interval: float | None = None,
        max_attempts: int | None = None,
        call_timeout: float | None = None,
        clock: Callable[[], dt.datetime] = utcnow,
        on_change: Optional[Listener] = None,
    ):
        self.user_id = user_id
        self.host = host
        self.store = store
        self.poller: Poller[PaymentWidget] = Poller(
            interval=settings.WIDGET_POLL_INTERVAL_SEC if poll_interval is None else poll_interval,
            max_attempts=max_attempts or settings.WIDGET_POLL_MAX_ATTEMPTS,
        )
        self.call_timeout = call_timeout or settings.PAYMENT_CALL_TIMEOUT_SEC
        self.clock = clock
        self.on_change = on_change

        self.state = UpgradeState.IDLE
        self.failure: PaymentFlowError | None = None
        self.order: UpgradeOrder | None = None
        self.payment: dict | None = None
        self.entitlement: SellerEntitlement | None = None
        self.widget: PaymentWidget | None = None
        self.rendered: set[PackageKind] = set()

    # ---------- helpers ----------

    async def _set(self, state: UpgradeState) -> None:
        # failed поглощающее: из него никуда
        if self.state == UpgradeState.FAILED and state != UpgradeState.FAILED:
            raise InvalidTransition("This payment attempt has ended. Please reopen the pricing page.")
        logger.info("upgrade[%s]: %s -> %s", self.user_id, self.state.value, state.value)
        self.state = state
        if self.on_change:
            await self.on_change(self)

    async def _fail(self, reason: FailureReason, message: str, order_id: str | None = None) -> PaymentFlowError:
        if self.state == UpgradeState.FAILED and self.failure is not None:
            return self.failure
        err = PaymentFlowError(reason, message, order_id)
        self.failure = err
        if self.order and self.order.status != OrderStatus.CAPTURED:
            self.order.status = OrderStatus.FAILED
        if reason == FailureReason.PARTIAL_PERSISTENCE:
            logger.error("upgrade[%s]: payment %s captured but not persisted", self.user_id, order_id)
        else:
            logger.warning("upgrade[%s]: failed (%s): %s", self.user_id, reason.value, message)
        await self._set(UpgradeState.FAILED)
        return err

    def _expect(self, *states: UpgradeState) -> None:
        if self.state == UpgradeState.FAILED:
            raise InvalidTransition("This payment attempt has ended. Please reopen the pricing page.")
        if self.state not in states:
            raise InvalidTransition(f"Cannot do this while payment is {self.state.value}")

    # ---------- widget ----------

    async def load_widget(self) -> UpgradeState:
        self._expect(UpgradeState.IDLE)
        await self._set(UpgradeState.WIDGET_LOADING)

        # проверяем один раз, до опроса
        try:
            self.host.page_identity()
        except HostRestrictedError as e:
            logger.warning("upgrade[%s]: host restricted: %s", self.user_id, e)
            await self._fail(
                FailureReason.HOST_RESTRICTED,
                "Payment interface is restricted by your browser's security settings (Inaccessible Host). "
                "Please try a standard browser window.",
            )
            return self.state

        try:
            self.widget = await self.poller.wait_for(self.host.load_widget)
        except PollTimeout:
            await self._fail(
                FailureReason.SDK_TIMEOUT,
                "PayPal SDK timed out. Check your internet connection or ad-blocker.",
            )
            return self.state
        except PollCancelled:
            logger.info("upgrade[%s]: widget loading cancelled", self.user_id)
            return self.state

        await self._set(UpgradeState.WIDGET_READY)
        return self.state

    def render_button(self, package: str | PackageKind) -> bool:
        """True: кнопка отрисована сейчас, False: уже была."""
        kind = get_package(package).kind
        if self.widget is None or self.state in TERMINAL_STATES:
            self._expect(UpgradeState.WIDGET_READY)
        if kind in self.rendered:
            return False
        self.rendered.add(kind)
        return True

    # ---------- order ----------

    async def create_order(self, package: str | PackageKind) -> UpgradeOrder:
        pkg = get_package(package)
        self._expect(UpgradeState.WIDGET_READY)

        self.order = UpgradeOrder(package=pkg.kind, amount=pkg.price, currency=settings.CURRENCY)
        await self._set(UpgradeState.ORDER_CREATING)

        request = OrderRequest(
            package=pkg.kind.value,
            amount=pkg.price,
            currency=settings.CURRENCY,
            description=f"MarketMaster {pkg.name} Package - {settings.PACKAGE_DAYS} Days",
        )
        try:
            order_id = await asyncio.wait_for(self.widget.create_order(request), self.call_timeout)
        except asyncio.TimeoutError:
            raise await self._fail(
                FailureReason.ORDER_REJECTED,
                "The payment processor did not respond. Please try again.",
            )
        except PaymentProcessorError as e:
            raise await self._fail(FailureReason.ORDER_REJECTED, f"The payment could not be started: {e}")

        self.order.order_id = order_id
        if self.state == UpgradeState.FAILED:
            # виджет упал, пока заказ создавался; денег ещё нет
            logger.info("upgrade[%s]: order %s dropped after failure", self.user_id, order_id)
            raise self.failure
        self.order.status = OrderStatus.AWAITING_CAPTURE
        await self._set(UpgradeState.AWAITING_CAPTURE)
        return self.order

    async def approve(self, order_id: str | None = None) -> SellerEntitlement:
        self._expect(UpgradeState.AWAITING_CAPTURE)
        if order_id and order_id != self.order.order_id:
            raise ValidationError("Unknown order")
        oid = self.order.order_id

        await self._set(UpgradeState.CAPTURING)
        try:
            captured = await asyncio.wait_for(self.widget.capture(oid), self.call_timeout)
        except asyncio.TimeoutError:
            raise await self._fail(
                FailureReason.CAPTURE_ERROR,
                f"The payment could not be confirmed in time. Reference: {oid}",
                oid,
            )
        except PaymentProcessorError as e:
            raise await self._fail(FailureReason.CAPTURE_ERROR, f"The payment could not be completed: {e}", oid)

        self.order.status = OrderStatus.CAPTURED
        if self.state == UpgradeState.FAILED:
            raise await self._captured_after_failure(oid)
        await self._set(UpgradeState.PERSISTING)
        await self._persist(captured)
        await self._set(UpgradeState.COMPLETED)
        return self.entitlement

    async def _captured_after_failure(self, oid: str) -> PaymentFlowError:
        """Деньги списаны, но попытка уже в failed: в базу не пишем, отдаём поддержке."""
        previous = self.failure.reason.value if self.failure else "unknown"
        logger.error(
            "upgrade[%s]: payment %s captured after failure (%s), needs reconciliation",
            self.user_id, oid, previous,
        )
        self.failure = PaymentFlowError(
            FailureReason.PARTIAL_PERSISTENCE,
            f"Payment received but the session had already failed. Support ID: {oid}",
            oid,
        )
        if self.on_change:
            await self.on_change(self)
        return self.failure

    async def _persist(self, captured: CapturedPayment) -> None:
        kind = self.order.package
        oid = captured.order_id

        # (а) запись платежа, (б) пакет продавца, строго по очереди
        try:
            self.payment = await run_in_threadpool(self.store.insert, "payments", {
                "user_id": self.user_id,
                "package_type": kind.value,
                "amount": captured.amount,
                "currency": captured.currency,
                "paypal_order_id": oid,
                "status": "completed",
            })
        except CollaboratorError:
            raise await self._fail(
                FailureReason.PARTIAL_PERSISTENCE,
                f"Payment received but could not be recorded. Support ID: {oid}",
                oid,
            )

        expiry = self.clock() + dt.timedelta(days=settings.PACKAGE_DAYS)
        try:
            rows = await run_in_threadpool(
                self.store.update, "users", {"id": self.user_id},
                {"package_type": kind.value, "package_expiry": expiry},
            )
        except CollaboratorError:
            rows = None
        if not rows:
            raise await self._fail(
                FailureReason.PARTIAL_PERSISTENCE,
                f"Account update failed. Support ID: {oid}",
                oid,
            )
        self.entitlement = SellerEntitlement(kind=kind, expiry=expiry)

    # ---------- widget callbacks ----------

    async def abandon(self) -> PaymentFlowError:
        self._expect(UpgradeState.AWAITING_CAPTURE)
        return await self._fail(
            FailureReason.CAPTURE_ERROR,
            "Payment was cancelled before it was completed.",
            self.order.order_id,
        )

    async def report_widget_error(self, message: str | None) -> PaymentFlowError | None:
        """None: обычная ошибка виджета, хватит всплывающего сообщения."""
        if self.state in TERMINAL_STATES:
            return self.failure
        if self.state == UpgradeState.PERSISTING:
            # capture прошёл, виджет больше ни на что не влияет
            logger.warning("upgrade[%s]: widget error after capture ignored: %s", self.user_id, message)
            return None
        oid = self.order.order_id if self.order else None
        if "window host" in (message or "").lower():
            return await self._fail(
                FailureReason.CROSS_ORIGIN_BLOCKED,
                "The payment window cannot communicate with the site due to cross-origin restrictions.",
                oid,
            )
        if self.state in (UpgradeState.AWAITING_CAPTURE, UpgradeState.CAPTURING):
            return await self._fail(FailureReason.CAPTURE_ERROR, "Payment window encountered an error.", oid)
        logger.warning("upgrade[%s]: widget error: %s", self.user_id, message)
        return None

    def cancel(self) -> None:
        self.poller.cancel()

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "failure": self.failure.to_dict() if self.failure else None,
            "order": self.order.to_dict() if self.order else None,
            "rendered": sorted(k.value for k in self.rendered),
            "entitlement": self.entitlement.to_dict() if self.entitlement else None,
        }


class UpgradeSessions:
    """Один оркестратор на пользователя; повторный вход даёт новый оркестратор."""

    def __init__(self, publish: Callable[[str, str, dict], Awaitable[None]] | None = None, **options):
        self._publish = publish
        self._options = options
        self._items: Dict[str, UpgradeOrchestrator] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    async def _notify(self, orch: UpgradeOrchestrator) -> None:
        if self._publish:
            await self._publish(orch.user_id, "upgrade", orch.snapshot())

    def enter(self, user_id: str, host: WidgetHost, store: RecordStore) -> UpgradeOrchestrator:
        self.leave(user_id)
        orch = UpgradeOrchestrator(user_id, host, store, on_change=self._notify, **self._options)
        self._items[user_id] = orch
        self._tasks[user_id] = asyncio.get_running_loop().create_task(orch.load_widget())
        return orch

    def get(self, user_id: str) -> UpgradeOrchestrator:
        orch = self._items.get(user_id)
        if orch is None:
            raise InvalidTransition("Open the pricing page to start a purchase.")
        return orch

    def leave(self, user_id: str) -> None:
        orch = self._items.pop(user_id, None)
        task = self._tasks.pop(user_id, None)
        if orch is not None:
            orch.cancel()
        if task is not None and not task.done():
            task.cancel()

    def on_auth_event(self, event: str, session) -> None:
        # выход из аккаунта гасит незавершённую покупку
        if event == SIGNED_OUT and session is not None:
            self.leave(session.user_id)
