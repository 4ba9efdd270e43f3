from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.datastructures import UploadFile

from ..deps import current_session, get_image_host, get_store
from ..services import ads as ads_service
from ..services.auth import Session
from ..services.imgbb import ImageHost
from ..services.listing import ALL_CATEGORIES, CATEGORIES, active_only, compute_visible, parse_query
from ..services.navigation import Screen, navigate_to
from ..services.store import RecordStore
from ..utils.clock import utcnow

router = APIRouter(prefix="/api/ads", tags=["ads"])


@router.get("")
def list_ads(request: Request, store: RecordStore = Depends(get_store)):
    query = parse_query(request.query_params)
    # истёкшие объявления в ленту не попадают
    ads = active_only(ads_service.load_ads(store), utcnow())
    items = compute_visible(ads, query)
    return {
        "ok": True,
        "items": [a.to_dict() for a in items],
        "categories": [ALL_CATEGORIES] + CATEGORIES,
        "query": {
            "category": query.category,
            "search": query.search,
            "min_price": float(query.min_price),
            "max_price": float(query.max_price),
            "sort": query.sort.value,
        },
    }


@router.post("")
async def create_ad(
    request: Request,
    session: Session = Depends(current_session),
    store: RecordStore = Depends(get_store),
    image_host: ImageHost = Depends(get_image_host),
):
    form = await request.form()
    images = []
    for f in form.getlist("images"):
        if isinstance(f, UploadFile) and f.filename:
            images.append(ads_service.ImageUpload(f.filename, await f.read(), f.content_type))
    fields = {k: v for k, v in form.items() if isinstance(v, str)}

    ad = await ads_service.publish_ad(store, image_host, session, fields, images)
    return {"ok": True, "ad": ad.to_dict(), "redirect": navigate_to(Screen.DASHBOARD)}


@router.get("/mine")
def my_ads(session: Session = Depends(current_session), store: RecordStore = Depends(get_store)):
    now = utcnow()
    items = []
    for ad in ads_service.seller_ads(store, session.user_id):
        row = ad.to_dict()
        row["status"] = "active" if ad.is_active(now) else "expired"
        items.append(row)
    return {"ok": True, "items": items}


@router.get("/{ad_id}")
def ad_details(ad_id: str, store: RecordStore = Depends(get_store)):
    return {"ok": True, "ad": ads_service.get_ad_details(store, ad_id)}


@router.post("/{ad_id}/click")
def ad_click(ad_id: str, store: RecordStore = Depends(get_store)):
    ads_service.record_click(store, ad_id)
    return {"ok": True}


@router.post("/{ad_id}/contact")
def ad_contact(ad_id: str, request: Request, store: RecordStore = Depends(get_store)):
    page_url = str(request.base_url).rstrip("/") + navigate_to(Screen.AD_DETAILS, ad_id)
    return {"ok": True, "url": ads_service.contact_link(store, ad_id, page_url)}


@router.delete("/{ad_id}")
def delete_ad(ad_id: str, session: Session = Depends(current_session), store: RecordStore = Depends(get_store)):
    try:
        ads_service.delete_ad(store, session.user_id, ad_id)
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return {"ok": True}
