# marketmaster/main.py
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from .config import settings
from .db import create_tables
from .errors import MarketError
from .routers import (
    ads as ads_router,
    auth as auth_router,
    dashboard as dashboard_router,
    pages as pages_router,
    pricing as pricing_router,
    profile as profile_router,
)
from .utils.log import get_logger

logger = get_logger(__name__)

app = FastAPI(title="MarketMaster")

# --- CORS ---
allowed_origins = (
    [o.strip() for o in settings.ALLOWED_ORIGINS.split(",")]
    if settings.ALLOWED_ORIGINS
    else ["*"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Сессии ---
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SECRET_KEY,
    session_cookie=settings.COOKIE_NAME,
    same_site=settings.COOKIE_SAMESITE or "lax",
    https_only=settings.COOKIE_SECURE,
    max_age=settings.JWT_TTL_SEC,
)

# --- Медиа (аватарки) ---
app.mount(settings.MEDIA_URL, StaticFiles(directory=settings.MEDIA_DIR, check_dir=False), name="media")


# --- Ошибки ---
@app.exception_handler(MarketError)
async def market_error_handler(request: Request, exc: MarketError):
    if exc.status_code >= 500:
        logger.warning("%s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


# --- Подключение роутеров ---
app.include_router(auth_router.router)
app.include_router(ads_router.router)
app.include_router(dashboard_router.router)
app.include_router(profile_router.router)
app.include_router(pricing_router.router)
app.include_router(pages_router.router)


# --- Инициализация БД ---
@app.on_event("startup")
def on_startup():
    create_tables()
    Path(settings.MEDIA_DIR).mkdir(parents=True, exist_ok=True)
