import pytest

from conftest import make_user
from marketmaster.errors import AuthRequired, ValidationError
from marketmaster.services.auth import SIGNED_IN, SIGNED_OUT, AuthProvider, validate_password
from marketmaster.utils.security import create_jwt, decode_jwt, hash_password, verify_password


class FakeRequest:
    def __init__(self, headers=None):
        self.session = {}
        self.headers = headers or {}


SELLER = {
    "email": "Nimal@Example.com ",
    "password": "secret123",
    "role": "seller",
    "full_name": "Nimal Perera",
    "whatsapp_number": "+94771234567",
    "country": "Sri Lanka",
}


def test_password_hash_roundtrip():
    encoded = hash_password("secret123")
    assert encoded.startswith("pbkdf2_sha256$")
    assert verify_password("secret123", encoded)
    assert not verify_password("wrong", encoded)
    assert not verify_password("secret123", None)
    assert not verify_password("secret123", "garbage")


def test_jwt_roundtrip():
    claims = decode_jwt(create_jwt({"sub": "u1", "role": "seller"}))
    assert claims["sub"] == "u1"
    assert decode_jwt("not-a-token") is None


@pytest.mark.parametrize("password, confirm", [("123", None), ("secret123", "secret124"), (None, None)])
def test_validate_password(password, confirm):
    with pytest.raises(ValidationError):
        validate_password(password, confirm)


def test_sign_up_seller(store):
    row = AuthProvider(store).sign_up(SELLER)
    assert row["email"] == "nimal@example.com"
    assert row["role"] == "seller"
    assert row["package_type"] == "none"
    assert row["country"] == "Sri Lanka"


def test_sign_up_buyer_drops_seller_fields(store):
    row = AuthProvider(store).sign_up({**SELLER, "role": "buyer"})
    assert row["role"] == "buyer"
    assert row["whatsapp_number"] is None
    assert row["country"] is None


@pytest.mark.parametrize("patch", [
    {"email": "not-an-email"},
    {"password": "12345"},
    {"role": "admin"},
    {"full_name": ""},
    {"whatsapp_number": ""},
])
def test_sign_up_validation(store, patch):
    with pytest.raises(ValidationError):
        AuthProvider(store).sign_up({**SELLER, **patch})


def test_sign_up_duplicate(store):
    auth = AuthProvider(store)
    auth.sign_up(SELLER)
    with pytest.raises(ValidationError, match="already registered"):
        auth.sign_up(SELLER)


def test_sign_in_and_out_emit_events(store):
    make_user(store, "seller", email="s@example.com")
    events = []
    listeners = []
    auth = AuthProvider(store, listeners)
    unsubscribe = auth.on_auth_event(lambda event, session: events.append((event, session.email)))

    request = FakeRequest()
    session, token = auth.sign_in(request, "S@example.com", "secret123")
    assert session.role == "seller"
    assert request.session["user"]["id"] == session.user_id
    assert auth.get_current_session(request) == session

    # другой экземпляр с тем же списком видит подписчиков
    AuthProvider(store, listeners).sign_out(request)
    assert auth.get_current_session(request) is None
    assert events == [(SIGNED_IN, "s@example.com"), (SIGNED_OUT, "s@example.com")]

    unsubscribe()
    assert listeners == []


def test_sign_in_wrong_password(store):
    make_user(store, "buyer", email="b@example.com")
    with pytest.raises(AuthRequired):
        AuthProvider(store).sign_in(FakeRequest(), "b@example.com", "nope")


def test_bearer_token_session(store):
    make_user(store, "buyer", email="b@example.com")
    auth = AuthProvider(store)
    session, token = auth.sign_in(FakeRequest(), "b@example.com", "secret123")

    api_request = FakeRequest({"Authorization": f"Bearer {token}"})
    assert auth.get_current_session(api_request) == session
    assert auth.get_current_session(FakeRequest({"Authorization": "Bearer junk"})) is None


def test_failing_listener_does_not_break_sign_in(store):
    make_user(store, "buyer", email="b@example.com")
    auth = AuthProvider(store)

    def boom(event, session):
        raise RuntimeError("listener bug")

    auth.on_auth_event(boom)
    session, _ = auth.sign_in(FakeRequest(), "b@example.com", "secret123")
    assert session.email == "b@example.com"


def test_update_password(store):
    row = make_user(store, "buyer", email="b@example.com")
    auth = AuthProvider(store)
    with pytest.raises(ValidationError):
        auth.update_password(row["id"], "newpass1", "newpass2")
    auth.update_password(row["id"], "newpass1", "newpass1")
    auth.sign_in(FakeRequest(), "b@example.com", "newpass1")
