# marketmaster/services/entitlement.py
from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping

from ..config import settings
from ..errors import EntitlementDenied, ValidationError
from ..utils.clock import as_utc


class PackageKind(str, enum.Enum):
    NONE = "none"
    SILVER = "silver"
    GOLD = "gold"


class GateReason(str, enum.Enum):
    ALLOWED = "allowed"
    NO_PACKAGE = "no_package"
    EXPIRED_PACKAGE = "expired_package"


@dataclass(frozen=True)
class SellerEntitlement:
    kind: PackageKind = PackageKind.NONE
    expiry: dt.datetime | None = None

    def __post_init__(self):
        # срок есть только у платного пакета
        if self.kind == PackageKind.NONE and self.expiry is not None:
            object.__setattr__(self, "expiry", None)

    def to_dict(self, now: dt.datetime | None = None) -> dict:
        out = {
            "package_type": self.kind.value,
            "package_expiry": self.expiry.isoformat() if self.expiry else None,
        }
        if now is not None:
            out["active"] = can_post_ad(self, now).allowed
            out["days_left"] = max((self.expiry - now).days, 0) if self.expiry else 0
        return out


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: GateReason


def can_post_ad(entitlement: SellerEntitlement, now: dt.datetime) -> GateDecision:
    if entitlement.kind == PackageKind.NONE:
        return GateDecision(False, GateReason.NO_PACKAGE)
    if entitlement.expiry is None or entitlement.expiry <= now:
        return GateDecision(False, GateReason.EXPIRED_PACKAGE)
    return GateDecision(True, GateReason.ALLOWED)


_DENIED_MESSAGES = {
    GateReason.NO_PACKAGE: "You need an active package to start posting ads.",
    GateReason.EXPIRED_PACKAGE: "Your package has expired. Please upgrade your package to post ads.",
}


def require_can_post(entitlement: SellerEntitlement, now: dt.datetime) -> None:
    decision = can_post_ad(entitlement, now)
    if not decision.allowed:
        raise EntitlementDenied(_DENIED_MESSAGES[decision.reason], decision.reason.value)


def entitlement_from_row(row: Mapping[str, Any] | None) -> SellerEntitlement:
    if not row:
        return SellerEntitlement()
    try:
        kind = PackageKind(row.get("package_type") or PackageKind.NONE.value)
    except ValueError:
        kind = PackageKind.NONE
    return SellerEntitlement(kind=kind, expiry=as_utc(row.get("package_expiry")))


# ---------- Каталог пакетов ----------

@dataclass(frozen=True)
class Package:
    kind: PackageKind
    name: str
    price: Decimal
    max_ads: int | None          # None: без ограничений
    description: str
    features: tuple = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "id": self.kind.value,
            "name": self.name,
            "price": float(self.price),
            "currency": settings.CURRENCY,
            "max_ads": self.max_ads if self.max_ads is not None else "unlimited",
            "days": settings.PACKAGE_DAYS,
            "description": self.description,
            "features": list(self.features),
        }


def packages() -> dict[PackageKind, Package]:
    return {
        PackageKind.SILVER: Package(
            kind=PackageKind.SILVER,
            name="Silver",
            price=Decimal(settings.SILVER_PRICE),
            max_ads=settings.SILVER_MAX_ADS,
            description="Perfect for individuals selling a few items.",
            features=(
                f"Up to {settings.SILVER_MAX_ADS} listings",
                "Standard visibility",
                "Basic analytics",
                f"{settings.AD_DAYS}-day listing duration",
            ),
        ),
        PackageKind.GOLD: Package(
            kind=PackageKind.GOLD,
            name="Gold",
            price=Decimal(settings.GOLD_PRICE),
            max_ads=None,
            description="For power sellers and businesses.",
            features=(
                "Unlimited listings",
                "Featured placement",
                "Advanced insights",
                "24/7 priority support",
                "Custom storefront",
            ),
        ),
    }


def get_package(kind: str | PackageKind) -> Package:
    try:
        k = PackageKind(kind)
        return packages()[k]
    except (ValueError, KeyError):
        raise ValidationError(f"Unknown package: {kind}") from None
