# marketmaster/services/navigation.py
from __future__ import annotations

import enum


class Screen(str, enum.Enum):
    HOME = "home"
    LOGIN = "login"
    REGISTER = "register"
    AD_DETAILS = "ad-details"
    DASHBOARD = "dashboard"
    POST_AD = "post-ad"
    PROFILE = "profile"
    PRICING = "pricing"


def navigate_to(screen: Screen | str, entity_id: str | None = None) -> str:
    screen = Screen(screen)
    if screen == Screen.HOME:
        return "/"
    path = f"/screens/{screen.value}"
    if entity_id:
        path += f"?id={entity_id}"
    return path


def resolve_screen(screen: Screen | str, role: str | None, entity_id: str | None = None) -> Screen:
    """Куда реально попадёт пользователь (role=None: гость)."""
    try:
        screen = Screen(screen)
    except ValueError:
        return Screen.HOME

    if screen == Screen.AD_DETAILS and not entity_id:
        return Screen.HOME
    if screen == Screen.DASHBOARD and role != "seller":
        return Screen.HOME
    if screen == Screen.POST_AD and role != "seller":
        return Screen.PRICING
    if screen == Screen.PROFILE and role is None:
        return Screen.LOGIN
    return screen
