# marketmaster/services/auth.py
"""
Вход/регистрация: cookie-сессия (SessionMiddleware) + JWT для API-клиентов.

Подписчики on_auth_event получают SIGNED_IN и SIGNED_OUT. Так, например,
при выходе гасится незавершённая покупка пакета.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from fastapi import Request

from ..errors import AuthRequired, ValidationError
from ..utils.clock import utcnow
from ..utils.log import get_logger
from ..utils.security import create_jwt, decode_jwt, hash_password, verify_password
from .store import RecordStore

logger = get_logger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

ROLES = ("buyer", "seller")
MIN_PASSWORD = 6
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class Session:
    user_id: str
    email: str
    role: str = "buyer"


AuthCallback = Callable[[str, Optional[Session]], None]


def _clean(value) -> str | None:
    return (value or "").strip() or None


def validate_password(password: str | None, confirm: str | None = None) -> str:
    if not password or len(password) < MIN_PASSWORD:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD} characters")
    if confirm is not None and password != confirm:
        raise ValidationError("Passwords do not match")
    return password


class AuthProvider:
    def __init__(self, store: RecordStore, listeners: List[AuthCallback] | None = None):
        self.store = store
        # список общий для всех экземпляров, если передан снаружи
        self._listeners: List[AuthCallback] = listeners if listeners is not None else []

    # ---------- events ----------

    def on_auth_event(self, callback: AuthCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: str, session: Session | None) -> None:
        for cb in list(self._listeners):
            try:
                cb(event, session)
            except Exception:
                logger.exception("auth listener failed on %s", event)

    # ---------- sign up / in / out ----------

    def sign_up(self, payload: dict) -> dict:
        email = (_clean(payload.get("email")) or "").lower()
        if not _EMAIL_RE.match(email):
            raise ValidationError("Enter a valid email address")
        password = validate_password(payload.get("password"))
        role = (_clean(payload.get("role")) or "buyer").lower()
        if role not in ROLES:
            raise ValidationError("Role must be buyer or seller")
        full_name = _clean(payload.get("full_name"))
        if not full_name:
            raise ValidationError("Full name is required")

        is_seller = role == "seller"
        whatsapp = _clean(payload.get("whatsapp_number")) if is_seller else None
        if is_seller and not whatsapp:
            raise ValidationError("WhatsApp number is required for sellers")

        if self.store.select_one("users", {"email": email}):
            raise ValidationError("User already registered")

        row = self.store.insert("users", {
            "email": email,
            "password_hash": hash_password(password),
            "role": role,
            "full_name": full_name,
            "whatsapp_number": whatsapp,
            "username": _clean(payload.get("username")) if is_seller else None,
            "country": _clean(payload.get("country")) if is_seller else None,
            "address": _clean(payload.get("address")) if is_seller else None,
            "package_type": "none",
        })
        logger.info("registered %s as %s", row["id"], role)
        return row

    def sign_in(self, request: Request, email: str | None, password: str | None) -> tuple[Session, str]:
        email = (_clean(email) or "").lower()
        row = self.store.select_one("users", {"email": email}) if email else None
        if not row or not verify_password(password or "", row.get("password_hash")):
            raise AuthRequired("Invalid login credentials")

        session = Session(user_id=row["id"], email=row["email"], role=row.get("role") or "buyer")
        request.session["user"] = {"id": session.user_id, "email": session.email, "role": session.role}
        self._emit(SIGNED_IN, session)
        token = create_jwt({"sub": session.user_id, "email": session.email, "role": session.role})
        return session, token

    def sign_out(self, request: Request) -> None:
        session = self.get_current_session(request)
        request.session.pop("user", None)
        self._emit(SIGNED_OUT, session)

    def get_current_session(self, request: Request) -> Session | None:
        # 1) cookie-сессия
        user = (getattr(request, "session", None) or {}).get("user")
        if user and user.get("id"):
            return Session(user_id=user["id"], email=user.get("email") or "", role=user.get("role") or "buyer")

        # 2) Bearer JWT
        auth = request.headers.get("Authorization") or ""
        if auth.lower().startswith("bearer "):
            claims = decode_jwt(auth[7:].strip())
            if claims and claims.get("sub"):
                return Session(
                    user_id=claims["sub"],
                    email=claims.get("email") or "",
                    role=claims.get("role") or "buyer",
                )
        return None

    def update_password(self, user_id: str, password: str, confirm: str | None = None) -> None:
        validate_password(password, confirm)
        self.store.update("users", {"id": user_id}, {
            "password_hash": hash_password(password),
            "updated_at": utcnow(),
        })
