import datetime as dt
from decimal import Decimal

import pytest

from conftest import NOW
from marketmaster.errors import EntitlementDenied, ValidationError
from marketmaster.services.entitlement import (
    GateReason,
    PackageKind,
    SellerEntitlement,
    can_post_ad,
    entitlement_from_row,
    get_package,
    packages,
    require_can_post,
)


def test_no_package():
    d = can_post_ad(SellerEntitlement(PackageKind.NONE), NOW)
    assert not d.allowed
    assert d.reason == GateReason.NO_PACKAGE


def test_expired_package():
    d = can_post_ad(SellerEntitlement(PackageKind.SILVER, NOW - dt.timedelta(seconds=1)), NOW)
    assert not d.allowed
    assert d.reason == GateReason.EXPIRED_PACKAGE


def test_expiry_equal_to_now_is_expired():
    assert can_post_ad(SellerEntitlement(PackageKind.GOLD, NOW), NOW).reason == GateReason.EXPIRED_PACKAGE


def test_active_package():
    d = can_post_ad(SellerEntitlement(PackageKind.GOLD, NOW + dt.timedelta(days=1)), NOW)
    assert d.allowed
    assert d.reason == GateReason.ALLOWED


def test_paid_package_without_expiry_is_not_allowed():
    assert can_post_ad(SellerEntitlement(PackageKind.SILVER, None), NOW).reason == GateReason.EXPIRED_PACKAGE


def test_none_package_drops_expiry():
    assert SellerEntitlement(PackageKind.NONE, NOW).expiry is None


def test_require_can_post_raises_with_reason():
    with pytest.raises(EntitlementDenied) as exc:
        require_can_post(SellerEntitlement(PackageKind.SILVER, NOW - dt.timedelta(days=1)), NOW)
    body = exc.value.to_dict()
    assert body["reason"] == "expired_package"
    assert body["redirect"] == "/screens/pricing"
    assert exc.value.status_code == 403


def test_entitlement_from_row_handles_naive_and_unknown():
    naive = dt.datetime(2030, 1, 1, 0, 0)
    ent = entitlement_from_row({"package_type": "silver", "package_expiry": naive})
    assert ent.kind == PackageKind.SILVER
    assert ent.expiry.tzinfo is not None

    assert entitlement_from_row({"package_type": "platinum"}).kind == PackageKind.NONE
    assert entitlement_from_row(None) == SellerEntitlement()


def test_to_dict_reports_days_left():
    ent = SellerEntitlement(PackageKind.GOLD, NOW + dt.timedelta(days=12, hours=3))
    out = ent.to_dict(NOW)
    assert out["active"] is True
    assert out["days_left"] == 12
    assert out["package_type"] == "gold"


def test_package_catalogue():
    cat = packages()
    assert set(cat) == {PackageKind.SILVER, PackageKind.GOLD}
    assert cat[PackageKind.SILVER].price == Decimal(2500)
    assert cat[PackageKind.SILVER].max_ads == 10
    assert cat[PackageKind.GOLD].max_ads is None
    assert cat[PackageKind.GOLD].to_dict()["max_ads"] == "unlimited"


@pytest.mark.parametrize("kind", ["none", "platinum", ""])
def test_get_package_rejects_unknown(kind):
    with pytest.raises(ValidationError):
        get_package(kind)
