# marketmaster/services/users.py
"""
Профиль пользователя: покупатель или продавец, различаются по role.
Поля продавца доступны только после проверки isinstance(p, SellerProfile).
"""
from __future__ import annotations

import datetime as dt
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..errors import EntitlementDenied
from ..utils.clock import as_utc
from .auth import Session
from .entitlement import PackageKind, SellerEntitlement
from .store import RecordStore


class BaseProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[dt.datetime] = None


class BuyerProfile(BaseProfile):
    role: Literal["buyer"] = "buyer"


class SellerProfile(BaseProfile):
    role: Literal["seller"] = "seller"
    username: Optional[str] = None
    country: Optional[str] = None
    address: Optional[str] = None
    contact_number: Optional[str] = None
    whatsapp_number: Optional[str] = None
    package_type: PackageKind = PackageKind.NONE
    package_expiry: Optional[dt.datetime] = None
    total_ads: int = 0

    @property
    def entitlement(self) -> SellerEntitlement:
        return SellerEntitlement(kind=self.package_type, expiry=as_utc(self.package_expiry))


Profile = Annotated[Union[BuyerProfile, SellerProfile], Field(discriminator="role")]

_profile = TypeAdapter(Profile)


def profile_from_row(row: Mapping[str, Any], **extra) -> BuyerProfile | SellerProfile:
    data = {k: v for k, v in row.items() if v is not None}
    data.setdefault("role", "buyer")
    return _profile.validate_python({**data, **extra})


def load_profile(store: RecordStore, session: Session) -> BuyerProfile | SellerProfile:
    """Свежее чтение из хранилища; без строки в users: покупатель по умолчанию."""
    row = store.select_one("users", {"id": session.user_id})
    if not row:
        return BuyerProfile(id=session.user_id, email=session.email)
    if row.get("role") == "seller":
        total = len(store.select("ads", {"seller_id": session.user_id}))
        return profile_from_row(row, total_ads=total)
    return profile_from_row(row)


def require_seller(profile: BuyerProfile | SellerProfile) -> SellerProfile:
    if not isinstance(profile, SellerProfile):
        raise EntitlementDenied("Only seller accounts can do this. You are currently a Buyer.", "not_seller")
    return profile


def profile_to_dict(profile: BuyerProfile | SellerProfile) -> dict:
    return profile.model_dump(mode="json")
