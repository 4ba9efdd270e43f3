# marketmaster/db.py
from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from .config import settings


# ---------- Declarative Base ----------
class Base(DeclarativeBase):
    pass


# ---------- Engine / Session ----------
def make_engine(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # in-memory база должна жить в одном соединении
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, future=True, **kwargs)
    return create_engine(url, pool_pre_ping=True, future=True)


engine = make_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def create_tables(bind=None) -> None:
    # Импорт моделей, чтобы create_all увидел все таблицы
    from .models import ad, payment, user  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
