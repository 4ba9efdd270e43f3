from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ..deps import current_profile, current_session, get_store, get_upgrades, get_widget_host, optional_session
from ..realtime import hub
from ..services.auth import Session
from ..services.entitlement import packages
from ..services.navigation import Screen, navigate_to
from ..services.paypal import PayPalHost
from ..services.store import RecordStore
from ..services.upgrade import UpgradeSessions
from ..services.users import SellerProfile, load_profile, require_seller
from ..utils.clock import utcnow

router = APIRouter(prefix="/api/pricing", tags=["pricing"])


# ---------- Каталог ----------
@router.get("")
def pricing(session: Session | None = Depends(optional_session), store: RecordStore = Depends(get_store)):
    out = {"ok": True, "packages": [p.to_dict() for p in packages().values()], "entitlement": None}
    if session is not None:
        # пакет читаем заново: он мог смениться в другой вкладке
        profile = load_profile(store, session)
        if isinstance(profile, SellerProfile):
            out["entitlement"] = profile.entitlement.to_dict(utcnow())
    return out


# ---------- Сессия покупки ----------
@router.post("/session")
async def enter_pricing(
    profile=Depends(current_profile),
    store: RecordStore = Depends(get_store),
    host: PayPalHost = Depends(get_widget_host),
    upgrades: UpgradeSessions = Depends(get_upgrades),
):
    seller = require_seller(profile)
    orch = upgrades.enter(seller.id, host, store)
    return {"ok": True, **orch.snapshot()}


@router.delete("/session")
def leave_pricing(session: Session = Depends(current_session), upgrades: UpgradeSessions = Depends(get_upgrades)):
    upgrades.leave(session.user_id)
    return {"ok": True}


@router.get("/state")
def pricing_state(session: Session = Depends(current_session), upgrades: UpgradeSessions = Depends(get_upgrades)):
    return {"ok": True, **upgrades.get(session.user_id).snapshot()}


@router.post("/buttons/{kind}")
def render_button(
    kind: str,
    session: Session = Depends(current_session),
    upgrades: UpgradeSessions = Depends(get_upgrades),
):
    rendered = upgrades.get(session.user_id).render_button(kind)
    return {"ok": True, "rendered": rendered}


# ---------- Колбэки виджета ----------
@router.post("/orders")
async def create_order(
    payload: dict,
    session: Session = Depends(current_session),
    upgrades: UpgradeSessions = Depends(get_upgrades),
):
    order = await upgrades.get(session.user_id).create_order(payload.get("package") or "")
    return {"ok": True, "order_id": order.order_id, "order": order.to_dict()}


@router.post("/orders/{order_id}/capture")
async def capture_order(
    order_id: str,
    session: Session = Depends(current_session),
    upgrades: UpgradeSessions = Depends(get_upgrades),
):
    ent = await upgrades.get(session.user_id).approve(order_id)
    return {
        "ok": True,
        "entitlement": ent.to_dict(utcnow()),
        "message": "Payment successful! Your package has been upgraded.",
        "redirect": navigate_to(Screen.DASHBOARD),
    }


@router.post("/abandon")
async def abandon_order(session: Session = Depends(current_session), upgrades: UpgradeSessions = Depends(get_upgrades)):
    err = await upgrades.get(session.user_id).abandon()
    return {"ok": True, "failure": err.to_dict()}


@router.post("/widget-error")
async def widget_error(
    payload: dict,
    session: Session = Depends(current_session),
    upgrades: UpgradeSessions = Depends(get_upgrades),
):
    err = await upgrades.get(session.user_id).report_widget_error(payload.get("message"))
    return {"ok": True, "failure": err.to_dict() if err else None}


# ---------- Real-time stream (SSE) ----------
@router.get("/events")
def pricing_events(session: Session = Depends(current_session)):
    async def gen():
        # первый «комментарий» держит канал открытым за прокси
        yield ": ok\n\n"
        async for msg in hub.subscribe(session.user_id):
            yield msg
    return StreamingResponse(gen(), media_type="text/event-stream")
