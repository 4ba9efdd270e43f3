import datetime as dt
import os
import tempfile
from decimal import Decimal

# до импорта marketmaster: settings читаются при импорте
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MEDIA_DIR"] = tempfile.mkdtemp(prefix="marketmaster-media-")
os.environ["PUBLIC_BASE_URL"] = "http://testserver"

import pytest
from sqlalchemy.orm import sessionmaker

from marketmaster.db import create_tables, make_engine
from marketmaster.services.listing import AdRecord, Condition
from marketmaster.services.paypal import CapturedPayment, HostRestrictedError
from marketmaster.services.store import RecordStore
from marketmaster.utils.clock import utcnow
from marketmaster.utils.security import hash_password

NOW = dt.datetime(2024, 6, 1, 12, 0, tzinfo=dt.timezone.utc)


@pytest.fixture
def store():
    """Чистая in-memory база на каждый тест."""
    engine = make_engine("sqlite://")
    create_tables(engine)
    yield RecordStore(sessionmaker(bind=engine, expire_on_commit=False))
    engine.dispose()


def make_user(store, role="seller", package="none", expiry=None, email=None, password="secret123", **extra):
    return store.insert("users", {
        "email": email or f"{role}-{package}@example.com",
        "password_hash": hash_password(password),
        "role": role,
        "full_name": f"Test {role.title()}",
        "whatsapp_number": "+94 77 123 4567" if role == "seller" else None,
        "package_type": package,
        "package_expiry": expiry,
        **extra,
    })


@pytest.fixture
def seller(store):
    return make_user(store, "seller", "gold", utcnow() + dt.timedelta(days=10))


@pytest.fixture
def buyer(store):
    return make_user(store, "buyer")


def make_ad(id, price=100, created_at=NOW, category="Electronics", title=None, views=0, days=30, seller_id="s1"):
    return AdRecord(
        id=id,
        seller_id=seller_id,
        title=title or f"Item {id}",
        description="desc",
        category=category,
        price=Decimal(price),
        condition=Condition.USED,
        location="Colombo",
        images=["https://img.example/1.jpg"],
        whatsapp_contact="+94771234567",
        created_at=created_at,
        expiry_date=created_at + dt.timedelta(days=days),
        views=views,
    )


# ---------- фейковый платёжный виджет ----------

class FakeWidget:
    def __init__(self, order_id="ORDER-1", fail_create=None, fail_capture=None, amount=Decimal("5000.00")):
        self.order_id = order_id
        self.fail_create = fail_create
        self.fail_capture = fail_capture
        self.amount = amount
        self.created = []
        self.captured = []

    async def create_order(self, request):
        self.created.append(request)
        if self.fail_create:
            raise self.fail_create
        return self.order_id

    async def capture(self, order_id):
        self.captured.append(order_id)
        if self.fail_capture:
            raise self.fail_capture
        return CapturedPayment(order_id=order_id, amount=self.amount, currency="LKR", status="COMPLETED")


class FakeHost:
    """Виджет появляется на ready_after-й попытке (None: никогда)."""

    def __init__(self, widget=None, ready_after=1, restricted=False):
        self.widget = widget or FakeWidget()
        self.ready_after = ready_after
        self.restricted = restricted
        self.probes = 0
        self.identity_checks = 0

    def page_identity(self):
        self.identity_checks += 1
        if self.restricted:
            raise HostRestrictedError("sandboxed frame")
        return "testserver"

    def load_widget(self):
        self.probes += 1
        if self.ready_after is not None and self.probes >= self.ready_after:
            return self.widget
        return None


@pytest.fixture
def fake_host():
    return FakeHost()
