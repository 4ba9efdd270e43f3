from fastapi import APIRouter, Depends, File, UploadFile
from starlette.concurrency import run_in_threadpool

from ..deps import current_profile, current_session, get_auth, get_object_store, get_store
from ..services import profile as profile_service
from ..services.auth import AuthProvider, Session
from ..services.storage import ObjectStore
from ..services.store import RecordStore
from ..services.users import profile_to_dict

router = APIRouter(prefix="/api/profile", tags=["profile"])


@router.get("")
def get_profile(profile=Depends(current_profile)):
    return {"ok": True, "profile": profile_to_dict(profile)}


@router.patch("")
def update_profile(
    payload: dict,
    session: Session = Depends(current_session),
    store: RecordStore = Depends(get_store),
):
    profile = profile_service.update_profile(store, session, payload)
    return {"ok": True, "profile": profile_to_dict(profile)}


@router.post("/password")
def change_password(
    payload: dict,
    session: Session = Depends(current_session),
    auth: AuthProvider = Depends(get_auth),
):
    profile_service.change_password(auth, session, payload.get("password"), payload.get("confirm_password"))
    return {"ok": True}


@router.post("/avatar")
async def upload_avatar(
    avatar: UploadFile = File(...),
    session: Session = Depends(current_session),
    store: RecordStore = Depends(get_store),
    objects: ObjectStore = Depends(get_object_store),
):
    data = await avatar.read()
    url = await run_in_threadpool(
        profile_service.upload_avatar, store, objects, session, data, avatar.content_type
    )
    return {"ok": True, "avatar_url": url}
