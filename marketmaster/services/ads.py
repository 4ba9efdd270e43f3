# marketmaster/services/ads.py
from __future__ import annotations

import asyncio
import datetime as dt
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List
from urllib.parse import quote

from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..errors import EntitlementDenied, NotFoundError, ValidationError
from ..utils.clock import utcnow
from ..utils.log import get_logger
from .entitlement import packages, require_can_post
from .imgbb import ImageHost
from .listing import CATEGORIES, AdRecord, Condition, ad_from_row
from .store import RecordStore
from .users import SellerProfile, load_profile, require_seller
from .auth import Session

logger = get_logger(__name__)


@dataclass
class ImageUpload:
    filename: str
    data: bytes
    content_type: str | None = None


def _text(form: Dict[str, Any], key: str) -> str:
    return (form.get(key) or "").strip()


def validate_ad_form(form: Dict[str, Any], images: List[ImageUpload]) -> Dict[str, Any]:
    """Проверка формы до любых сетевых вызовов."""
    title = _text(form, "title")
    if not title:
        raise ValidationError("Ad title is required")
    if len(title) > 200:
        raise ValidationError("Ad title is too long")

    category = _text(form, "category")
    if category not in CATEGORIES:
        raise ValidationError("Select a category")

    raw_price = _text(form, "price")
    try:
        price = Decimal(raw_price)
    except (InvalidOperation, ValueError):
        raise ValidationError("Enter a valid price") from None
    if not price.is_finite() or price < 0:
        raise ValidationError("Price must be zero or more")

    try:
        condition = Condition(_text(form, "condition").lower() or Condition.USED.value)
    except ValueError:
        raise ValidationError("Condition must be new, used or refurbished") from None

    location = _text(form, "location")
    if not location:
        raise ValidationError("Location is required")
    description = _text(form, "description")
    if not description:
        raise ValidationError("Description is required")

    if not images:
        raise ValidationError("Please upload at least one image")
    if len(images) > settings.MAX_AD_IMAGES:
        raise ValidationError(f"Maximum {settings.MAX_AD_IMAGES} images allowed")
    if any(not img.data for img in images):
        raise ValidationError("One of the images is empty")

    return {
        "title": title,
        "category": category,
        "sub_category": _text(form, "sub_category") or None,
        "price": price,
        "condition": condition.value,
        "location": location,
        "description": description,
    }


def _check_quota(store: RecordStore, seller: SellerProfile, now: dt.datetime) -> None:
    pkg = packages().get(seller.package_type)
    if pkg is None or pkg.max_ads is None:
        return
    active = [a for a in (ad_from_row(r) for r in store.select("ads", {"seller_id": seller.id})) if a.is_active(now)]
    if len(active) >= pkg.max_ads:
        raise EntitlementDenied(
            f"Your {pkg.name} package allows up to {pkg.max_ads} active ads. Upgrade to post more.",
            "ad_limit_reached",
        )


async def publish_ad(
    store: RecordStore,
    image_host: ImageHost,
    session: Session,
    form: Dict[str, Any],
    images: List[ImageUpload],
    now: dt.datetime | None = None,
) -> AdRecord:
    fields = validate_ad_form(form, images)

    # пакет проверяем в момент отправки: он мог истечь, пока открыта форма
    seller = require_seller(await run_in_threadpool(load_profile, store, session))
    now = now or utcnow()
    require_can_post(seller.entitlement, now)
    await run_in_threadpool(_check_quota, store, seller, now)

    urls = await asyncio.gather(*(
        image_host.upload(img.data, img.filename, img.content_type) for img in images
    ))

    row = await run_in_threadpool(store.insert, "ads", {
        **fields,
        "seller_id": seller.id,
        "images": list(urls),
        "whatsapp_contact": seller.whatsapp_number,
        "created_at": now,
        "expiry_date": now + dt.timedelta(days=settings.AD_DAYS),
        "views": 0,
        "clicks": 0,
        "whatsapp_clicks": 0,
    })
    logger.info("ad %s published by %s", row["id"], seller.id)
    return ad_from_row(row)


def load_ads(store: RecordStore) -> List[AdRecord]:
    return [ad_from_row(r) for r in store.select("ads")]


def _get_row(store: RecordStore, ad_id: str) -> Dict[str, Any]:
    row = store.select_one("ads", {"id": ad_id})
    if not row:
        raise NotFoundError("Ad not found")
    return row


def get_ad_details(store: RecordStore, ad_id: str, count_view: bool = True) -> dict:
    if count_view:
        store.increment("ads", {"id": ad_id}, "views")
    ad = ad_from_row(_get_row(store, ad_id))
    seller = store.select_one("users", {"id": ad.seller_id}) or {}
    out = ad.to_dict()
    out["seller"] = {
        "full_name": seller.get("full_name"),
        "avatar_url": seller.get("avatar_url"),
        "whatsapp_number": seller.get("whatsapp_number"),
    }
    return out


def record_click(store: RecordStore, ad_id: str) -> None:
    if not store.increment("ads", {"id": ad_id}, "clicks"):
        raise NotFoundError("Ad not found")


def contact_link(store: RecordStore, ad_id: str, page_url: str) -> str:
    ad = ad_from_row(_get_row(store, ad_id))
    number = "".join(ch for ch in (ad.whatsapp_contact or "") if ch.isdigit())
    if not number:
        raise ValidationError("This seller has no WhatsApp contact")
    store.increment("ads", {"id": ad_id}, "whatsapp_clicks")
    message = f"Hi, I want to buy this product: {ad.title}. Link: {page_url}"
    return f"https://wa.me/{number}?text={quote(message)}"


def seller_ads(store: RecordStore, seller_id: str) -> List[AdRecord]:
    rows = store.select("ads", {"seller_id": seller_id}, order_by="created_at", descending=True)
    return [ad_from_row(r) for r in rows]


def delete_ad(store: RecordStore, user_id: str, ad_id: str) -> None:
    row = _get_row(store, ad_id)
    if row["seller_id"] != user_id:
        raise PermissionError("You can only delete your own ads")
    store.delete("ads", {"id": ad_id})
    logger.info("ad %s deleted by %s", ad_id, user_id)
