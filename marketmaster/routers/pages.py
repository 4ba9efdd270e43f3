from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from ..config import settings
from ..deps import get_store, optional_session
from ..services.auth import Session
from ..services.entitlement import packages
from ..services.listing import ALL_CATEGORIES, CATEGORIES
from ..services.navigation import Screen, navigate_to, resolve_screen
from ..services.store import RecordStore
from ..services.users import load_profile

router = APIRouter(tags=["pages"])

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def _role(store: RecordStore, session: Session | None) -> str | None:
    if session is None:
        return None
    # роль берём из профиля, а не из cookie
    return load_profile(store, session).role


def _render(request: Request, screen: Screen, role: str | None, entity_id: str | None = None):
    context = {
        "request": request,
        "screen": screen.value,
        "role": role,
        "entity_id": entity_id,
        "categories": [ALL_CATEGORIES] + CATEGORIES,
        "currency": settings.CURRENCY,
    }
    if screen == Screen.PRICING:
        context["packages"] = [p.to_dict() for p in packages().values()]
        context["paypal_client_id"] = settings.PAYPAL_CLIENT_ID
        return templates.TemplateResponse("pricing.html", context)
    return templates.TemplateResponse("screen.html", context)


@router.get("/", include_in_schema=False)
def home(
    request: Request,
    session: Session | None = Depends(optional_session),
    store: RecordStore = Depends(get_store),
):
    return _render(request, Screen.HOME, _role(store, session))


@router.get("/screens/{screen}", include_in_schema=False)
def screen_page(
    screen: str,
    request: Request,
    id: str | None = None,
    session: Session | None = Depends(optional_session),
    store: RecordStore = Depends(get_store),
):
    role = _role(store, session)
    target = resolve_screen(screen, role, id)
    if target.value != screen:
        return RedirectResponse(navigate_to(target, id if target == Screen.AD_DETAILS else None), status_code=303)
    return _render(request, target, role, id)
