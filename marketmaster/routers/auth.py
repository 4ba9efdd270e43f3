from fastapi import APIRouter, Depends, Request

from ..deps import current_profile, get_auth
from ..services.auth import AuthProvider
from ..services.users import profile_to_dict

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/auth/register")
def register(payload: dict, auth: AuthProvider = Depends(get_auth)):
    row = auth.sign_up(payload)
    return {"ok": True, "user_id": row["id"], "role": row["role"]}


@router.post("/auth/login")
def login(payload: dict, request: Request, auth: AuthProvider = Depends(get_auth)):
    session, token = auth.sign_in(request, payload.get("email"), payload.get("password"))
    return {
        "ok": True,
        "user_id": session.user_id,
        "role": session.role,
        "access_token": token,
        "token_type": "bearer",
    }


@router.post("/auth/logout")
def logout(request: Request, auth: AuthProvider = Depends(get_auth)):
    auth.sign_out(request)
    return {"ok": True}


@router.get("/me")
def me(profile=Depends(current_profile)):
    return {"ok": True, "profile": profile_to_dict(profile)}
