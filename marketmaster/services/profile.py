# marketmaster/services/profile.py
from __future__ import annotations

import uuid
from typing import Any, Dict

from ..errors import ValidationError
from ..utils.clock import utcnow
from ..utils.log import get_logger
from .auth import AuthProvider, Session
from .storage import ObjectStore
from .store import RecordStore
from .users import BuyerProfile, SellerProfile, load_profile

logger = get_logger(__name__)

COMMON_FIELDS = ("full_name",)
SELLER_FIELDS = ("username", "country", "address", "contact_number", "whatsapp_number")

AVATAR_TYPES = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp", "image/gif": "gif"}
MAX_AVATAR_BYTES = 5 * 1024 * 1024


def update_profile(store: RecordStore, session: Session, payload: Dict[str, Any]) -> BuyerProfile | SellerProfile:
    profile = load_profile(store, session)

    allowed = COMMON_FIELDS
    # поля продавца: только после сужения типа
    if isinstance(profile, SellerProfile):
        allowed = COMMON_FIELDS + SELLER_FIELDS

    patch = {}
    for key in allowed:
        if key in payload:
            patch[key] = (payload.get(key) or "").strip() or None

    if "full_name" in patch and not patch["full_name"]:
        raise ValidationError("Full name is required")
    if isinstance(profile, SellerProfile) and "whatsapp_number" in patch and not patch["whatsapp_number"]:
        raise ValidationError("WhatsApp number is required for sellers")
    if not patch:
        return profile

    patch["updated_at"] = utcnow()
    if not store.update("users", {"id": session.user_id}, patch):
        raise ValidationError("Profile not found")
    logger.info("profile %s updated: %s", session.user_id, sorted(patch))
    return load_profile(store, session)


def change_password(auth: AuthProvider, session: Session, password: str | None, confirm: str | None) -> None:
    auth.update_password(session.user_id, password, confirm)
    logger.info("password changed for %s", session.user_id)


def upload_avatar(
    store: RecordStore,
    objects: ObjectStore,
    session: Session,
    data: bytes,
    content_type: str | None,
) -> str:
    ext = AVATAR_TYPES.get((content_type or "").lower())
    if ext is None:
        raise ValidationError("Avatar must be a JPEG, PNG, WEBP or GIF image")
    if not data:
        raise ValidationError("Avatar file is empty")
    if len(data) > MAX_AVATAR_BYTES:
        raise ValidationError("Avatar is too large")

    path = objects.upload(f"avatars/{session.user_id}-{uuid.uuid4().hex}.{ext}", data)
    url = objects.get_public_url(path)
    store.update("users", {"id": session.user_id}, {"avatar_url": url, "updated_at": utcnow()})
    return url
