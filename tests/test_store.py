import datetime as dt

import pytest

from conftest import make_user
from marketmaster.errors import CollaboratorError


def _ad(seller_id, title, **kw):
    now = dt.datetime(2024, 6, 1, tzinfo=dt.timezone.utc)
    return {
        "seller_id": seller_id,
        "title": title,
        "description": "d",
        "category": "Electronics",
        "price": 100,
        "location": "Kandy",
        "images": ["https://img.example/a.jpg"],
        "created_at": now,
        "expiry_date": now + dt.timedelta(days=30),
        **kw,
    }


def test_insert_returns_row_with_defaults(store, seller):
    row = store.insert("ads", _ad(seller["id"], "Camera"))
    assert len(row["id"]) == 36
    assert row["views"] == 0
    assert row["condition"] == "used"
    assert row["images"] == ["https://img.example/a.jpg"]


def test_select_filters_and_orders(store, seller):
    other = make_user(store, "seller", "silver", email="other@example.com")
    store.insert("ads", _ad(seller["id"], "B", views=5))
    store.insert("ads", _ad(seller["id"], "A", views=9))
    store.insert("ads", _ad(other["id"], "C", views=1))

    mine = store.select("ads", {"seller_id": seller["id"]}, order_by="views", descending=True)
    assert [r["title"] for r in mine] == ["A", "B"]

    both = store.select("ads", {"seller_id": [seller["id"], other["id"]]})
    assert len(both) == 3
    assert store.select("ads", limit=1)[0]["title"] in {"A", "B", "C"}


def test_update_returns_updated_rows(store, seller):
    rows = store.update("users", {"id": seller["id"]}, {"full_name": "New Name"})
    assert [r["full_name"] for r in rows] == ["New Name"]
    assert store.update("users", {"id": "missing"}, {"full_name": "x"}) == []


def test_increment_and_delete(store, seller):
    ad = store.insert("ads", _ad(seller["id"], "Bike"))
    assert store.increment("ads", {"id": ad["id"]}, "views") == 1
    store.increment("ads", {"id": ad["id"]}, "views", by=2)
    assert store.select_one("ads", {"id": ad["id"]})["views"] == 3
    assert store.increment("ads", {"id": "nope"}, "views") == 0

    assert store.delete("ads", {"id": ad["id"]}) == 1
    assert store.select_one("ads", {"id": ad["id"]}) is None


def test_unknown_table_or_column(store):
    with pytest.raises(CollaboratorError):
        store.select("orders")
    with pytest.raises(CollaboratorError):
        store.select("ads", {"colour": "red"})


def test_constraint_violation_becomes_collaborator_error(store, seller):
    with pytest.raises(CollaboratorError):
        store.insert("users", {"email": seller["email"], "role": "buyer"})
