# marketmaster/deps.py
from __future__ import annotations

from typing import List

from fastapi import Depends, Request

from .db import SessionLocal
from .errors import AuthRequired
from .realtime import hub
from .services.auth import AuthCallback, AuthProvider, Session
from .services.imgbb import ImageHost
from .services.paypal import PayPalHost
from .services.storage import ObjectStore
from .services.store import RecordStore
from .services.upgrade import UpgradeSessions
from .services.users import load_profile


# ------------------ Singletons ------------------

store = RecordStore(SessionLocal)

# подписчики auth-событий живут дольше одного запроса
auth_listeners: List[AuthCallback] = []

upgrades = UpgradeSessions(publish=hub.publish)
auth_listeners.append(upgrades.on_auth_event)

widget_host = PayPalHost()
image_host = ImageHost()
object_store = ObjectStore()


# ------------------ Collaborators ------------------

def get_store() -> RecordStore:
    return store


def get_auth(store: RecordStore = Depends(get_store)) -> AuthProvider:
    return AuthProvider(store, auth_listeners)


def get_image_host() -> ImageHost:
    return image_host


def get_object_store() -> ObjectStore:
    return object_store


def get_widget_host() -> PayPalHost:
    return widget_host


def get_upgrades() -> UpgradeSessions:
    return upgrades


# ------------------ Session guards ------------------

def optional_session(request: Request, auth: AuthProvider = Depends(get_auth)) -> Session | None:
    return auth.get_current_session(request)


def current_session(session: Session | None = Depends(optional_session)) -> Session:
    if session is None:
        raise AuthRequired("Please log in to continue")
    return session


def current_profile(
    session: Session = Depends(current_session),
    store: RecordStore = Depends(get_store),
):
    return load_profile(store, session)
