import pytest

from marketmaster.services.navigation import Screen, navigate_to, resolve_screen


def test_navigate_to():
    assert navigate_to(Screen.HOME) == "/"
    assert navigate_to("pricing") == "/screens/pricing"
    assert navigate_to(Screen.AD_DETAILS, "ad-1") == "/screens/ad-details?id=ad-1"


@pytest.mark.parametrize("screen, role, entity_id, expected", [
    ("ad-details", None, None, Screen.HOME),
    ("ad-details", None, "a1", Screen.AD_DETAILS),
    ("dashboard", "buyer", None, Screen.HOME),
    ("dashboard", "seller", None, Screen.DASHBOARD),
    ("post-ad", "buyer", None, Screen.PRICING),
    ("post-ad", None, None, Screen.PRICING),
    ("post-ad", "seller", None, Screen.POST_AD),
    ("profile", None, None, Screen.LOGIN),
    ("profile", "buyer", None, Screen.PROFILE),
    ("pricing", None, None, Screen.PRICING),
    ("checkout", "seller", None, Screen.HOME),
])
def test_resolve_screen(screen, role, entity_id, expected):
    assert resolve_screen(screen, role, entity_id) == expected
