# marketmaster/services/listing.py
"""
Лента объявлений: фильтр + сортировка в памяти.

compute_visible: чистая функция, её можно звать на каждое изменение
запроса. Пустой список на входе даёт пустой список на выходе.
"""
from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Sequence

from ..config import settings
from ..utils.clock import as_utc

ALL_CATEGORIES = "All"

CATEGORIES = [
    "Electronics",
    "Vehicles",
    "Property",
    "Home & Furniture",
    "Sports & Hobbies",
    "Fashion",
    "Jobs",
    "Services",
]


class Condition(str, enum.Enum):
    NEW = "new"
    USED = "used"
    REFURBISHED = "refurbished"


class SortKey(str, enum.Enum):
    NEWEST = "newest"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    POPULAR = "popular"


# старые значения из фронта
_SORT_ALIASES = {
    "latest": SortKey.NEWEST,
    "price-ascending": SortKey.PRICE_ASC,
    "price-descending": SortKey.PRICE_DESC,
    "most-viewed": SortKey.POPULAR,
}


@dataclass
class AdRecord:
    id: str
    seller_id: str
    title: str
    description: str
    category: str
    price: Decimal
    condition: Condition
    location: str
    images: List[str]
    whatsapp_contact: str | None
    created_at: dt.datetime
    expiry_date: dt.datetime
    sub_category: str | None = None
    views: int = 0
    clicks: int = 0
    whatsapp_clicks: int = 0

    def is_active(self, now: dt.datetime) -> bool:
        return now < self.expiry_date

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "sub_category": self.sub_category,
            "price": float(self.price),
            "condition": self.condition.value,
            "location": self.location,
            "images": list(self.images),
            "whatsapp_contact": self.whatsapp_contact,
            "created_at": self.created_at.isoformat(),
            "expiry_date": self.expiry_date.isoformat(),
            "views": self.views,
            "clicks": self.clicks,
            "whatsapp_clicks": self.whatsapp_clicks,
        }


@dataclass(frozen=True)
class ListingQuery:
    category: str = ALL_CATEGORIES
    search: str = ""
    min_price: Decimal = Decimal(0)
    max_price: Decimal = field(default_factory=lambda: Decimal(settings.DEFAULT_MAX_PRICE))
    sort: SortKey = SortKey.NEWEST

    def normalized(self) -> "ListingQuery":
        # перевёрнутый диапазон не ошибка: меняем границы местами
        if self.min_price > self.max_price:
            return replace(self, min_price=self.max_price, max_price=self.min_price)
        return self


def ad_from_row(row: Mapping[str, Any]) -> AdRecord:
    return AdRecord(
        id=row["id"],
        seller_id=row["seller_id"],
        title=row["title"],
        description=row.get("description") or "",
        category=row["category"],
        sub_category=row.get("sub_category"),
        price=Decimal(str(row["price"])),
        condition=Condition(row.get("condition") or Condition.USED.value),
        location=row.get("location") or "",
        images=list(row.get("images") or []),
        whatsapp_contact=row.get("whatsapp_contact"),
        created_at=as_utc(row["created_at"]),
        expiry_date=as_utc(row["expiry_date"]),
        views=row.get("views") or 0,
        clicks=row.get("clicks") or 0,
        whatsapp_clicks=row.get("whatsapp_clicks") or 0,
    )


def _price(raw: Any, default: Decimal) -> Decimal:
    if raw in (None, ""):
        return default
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return default
    if not value.is_finite() or value < 0:
        return default
    return value


def parse_query(params: Mapping[str, Any]) -> ListingQuery:
    """Строка запроса -> ListingQuery. Мусор в цене сбрасывается в дефолт."""
    category = (params.get("category") or ALL_CATEGORIES).strip() or ALL_CATEGORIES
    if category.lower() == "all":
        category = ALL_CATEGORIES

    raw_sort = (params.get("sort") or SortKey.NEWEST.value).strip().lower()
    try:
        sort = _SORT_ALIASES.get(raw_sort) or SortKey(raw_sort)
    except ValueError:
        sort = SortKey.NEWEST

    return ListingQuery(
        category=category,
        search=(params.get("q") or params.get("search") or "").strip(),
        min_price=_price(params.get("min_price"), Decimal(0)),
        max_price=_price(params.get("max_price"), Decimal(settings.DEFAULT_MAX_PRICE)),
        sort=sort,
    )


def _matches(ad: AdRecord, q: ListingQuery, term: str) -> bool:
    if q.category != ALL_CATEGORIES and ad.category != q.category:
        return False
    if term and term not in ad.title.lower():
        return False
    return q.min_price <= ad.price <= q.max_price


def compute_visible(ads: Sequence[AdRecord], query: ListingQuery) -> List[AdRecord]:
    q = query.normalized()
    term = q.search.lower()
    out = [ad for ad in ads if _matches(ad, q, term)]

    # sorted() стабилен и при reverse=True
    if q.sort == SortKey.NEWEST:
        out = sorted(out, key=lambda a: a.created_at, reverse=True)
    elif q.sort == SortKey.PRICE_ASC:
        out = sorted(out, key=lambda a: a.price)
    elif q.sort == SortKey.PRICE_DESC:
        out = sorted(out, key=lambda a: a.price, reverse=True)
    elif q.sort == SortKey.POPULAR:
        out = sorted(out, key=lambda a: a.views, reverse=True)
    return out


def active_only(ads: Iterable[AdRecord], now: dt.datetime) -> List[AdRecord]:
    return [ad for ad in ads if ad.is_active(now)]
