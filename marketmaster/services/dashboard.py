# marketmaster/services/dashboard.py
from __future__ import annotations

import datetime as dt
from collections import Counter
from typing import List

from .ads import seller_ads
from .listing import AdRecord
from .store import RecordStore
from .users import SellerProfile
from ..utils.clock import iso


def _ad_row(ad: AdRecord, now: dt.datetime) -> dict:
    out = ad.to_dict()
    out["status"] = "active" if ad.is_active(now) else "expired"
    return out


def _totals(ads: List[AdRecord], now: dt.datetime) -> dict:
    return {
        "total_ads": len(ads),
        "active_ads": sum(1 for a in ads if a.is_active(now)),
        "views": sum(a.views for a in ads),
        "clicks": sum(a.clicks for a in ads),
        "whatsapp_leads": sum(a.whatsapp_clicks for a in ads),
    }


def _invoices(store: RecordStore, user_id: str) -> List[dict]:
    rows = store.select("payments", {"user_id": user_id}, order_by="created_at", descending=True)
    return [
        {
            "id": r["id"],
            "package_type": r["package_type"],
            "amount": float(r["amount"]),
            "currency": r["currency"],
            "order_id": r["paypal_order_id"],
            "status": r["status"],
            "created_at": iso(r.get("created_at")),
        }
        for r in rows
    ]


def build_dashboard(store: RecordStore, seller: SellerProfile, now: dt.datetime) -> dict:
    ads = seller_ads(store, seller.id)
    top = sorted(ads, key=lambda a: a.views, reverse=True)[:5]
    by_category = Counter(a.category for a in ads)
    return {
        "stats": _totals(ads, now),
        "ads": [_ad_row(a, now) for a in ads],
        "invoices": _invoices(store, seller.id),
        "entitlement": seller.entitlement.to_dict(now),
        "analytics": {
            "top_ads": [{"id": a.id, "title": a.title, "views": a.views, "clicks": a.clicks} for a in top],
            "by_category": dict(by_category),
        },
    }
