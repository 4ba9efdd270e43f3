# marketmaster/errors.py
"""
Ошибки приложения. Все они ограничены одним действием пользователя:
роутер превращает их в JSON с понятным сообщением, процесс не падает.
"""
from __future__ import annotations

import enum

from .services.navigation import Screen, navigate_to


class MarketError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.code, "detail": self.message}


class ValidationError(MarketError):
    """Некорректный ввод формы. До сетевых вызовов не доходит."""

    code = "validation_error"
    status_code = 400


class AuthRequired(MarketError):
    code = "auth_required"
    status_code = 401


class NotFoundError(MarketError):
    code = "not_found"
    status_code = 404


class CollaboratorError(MarketError):
    """Сбой внешнего сервиса (хранилище, auth, хостинг картинок)."""

    code = "collaborator_error"
    status_code = 502


class EntitlementDenied(MarketError):
    code = "entitlement_denied"
    status_code = 403

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["reason"] = self.reason
        out["redirect"] = navigate_to(Screen.PRICING)
        return out


class FailureReason(str, enum.Enum):
    HOST_RESTRICTED = "host_restricted"
    SDK_TIMEOUT = "sdk_timeout"
    ORDER_REJECTED = "order_rejected"
    CAPTURE_ERROR = "capture_error"
    CROSS_ORIGIN_BLOCKED = "cross_origin_blocked"
    PARTIAL_PERSISTENCE = "partial_persistence"


class PaymentFlowError(MarketError):
    code = "payment_flow_error"
    status_code = 409

    def __init__(self, reason: FailureReason, message: str, order_id: str | None = None):
        super().__init__(message)
        self.reason = reason
        self.order_id = order_id

    @property
    def retryable(self) -> bool:
        # без другого окна браузера повтор не поможет
        return self.reason not in (FailureReason.HOST_RESTRICTED, FailureReason.CROSS_ORIGIN_BLOCKED)

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["reason"] = self.reason.value
        out["retryable"] = self.retryable
        if self.order_id:
            out["support_id"] = self.order_id
        return out
