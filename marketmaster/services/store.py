# marketmaster/services/store.py
"""
Хранилище записей: select / insert / update поверх SQLAlchemy.

Остальной код видит только строки-словари и CollaboratorError, как у
хостингового клиента. Экземпляр один на процесс (см. deps.get_store).
"""
from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..errors import CollaboratorError
from ..models.ad import Ad
from ..models.payment import Payment
from ..models.user import User
from ..utils.log import get_logger

logger = get_logger(__name__)

TABLES = {
    "ads": Ad,
    "users": User,
    "payments": Payment,
}


def _row(obj) -> Dict[str, Any]:
    return {c.name: getattr(obj, c.name) for c in obj.__table__.columns}


class RecordStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise CollaboratorError(f"Unknown table: {table}") from None

    def _where(self, model, filters: Dict[str, Any] | None):
        conds = []
        for key, value in (filters or {}).items():
            col = getattr(model, key, None)
            if col is None:
                raise CollaboratorError(f"Unknown column {model.__tablename__}.{key}")
            if isinstance(value, (list, tuple, set)):
                conds.append(col.in_(list(value)))
            else:
                conds.append(col == value)
        return conds

    def select(
        self,
        table: str,
        filters: Dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> List[Dict[str, Any]]:
        model = self._model(table)
        q = select(model).where(*self._where(model, filters))
        if order_by:
            col = getattr(model, order_by)
            q = q.order_by(col.desc() if descending else col.asc())
        if limit:
            q = q.limit(limit)
        try:
            with self._session_factory() as db:
                return [_row(x) for x in db.execute(q).scalars().all()]
        except SQLAlchemyError as e:
            logger.warning("select %s failed: %s", table, e)
            raise CollaboratorError(f"Could not load {table}") from e

    def select_one(self, table: str, filters: Dict[str, Any]) -> Dict[str, Any] | None:
        rows = self.select(table, filters, limit=1)
        return rows[0] if rows else None

    def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model(table)
        try:
            with self._session_factory() as db:
                obj = model(**record)
                db.add(obj)
                db.commit()
                db.refresh(obj)
                return _row(obj)
        except (SQLAlchemyError, TypeError) as e:
            logger.warning("insert into %s failed: %s", table, e)
            raise CollaboratorError(f"Could not save {table} record") from e

    def update(self, table: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Возвращает обновлённые строки; пустой список: ничего не совпало."""
        model = self._model(table)
        conds = self._where(model, filters)
        try:
            with self._session_factory() as db:
                db.execute(update(model).where(*conds).values(**patch))
                db.commit()
                rows = db.execute(select(model).where(*conds)).scalars().all()
                return [_row(x) for x in rows]
        except SQLAlchemyError as e:
            logger.warning("update %s failed: %s", table, e)
            raise CollaboratorError(f"Could not update {table}") from e

    def increment(self, table: str, filters: Dict[str, Any], column: str, by: int = 1) -> int:
        model = self._model(table)
        col = getattr(model, column)
        try:
            with self._session_factory() as db:
                res = db.execute(update(model).where(*self._where(model, filters)).values({col: col + by}))
                db.commit()
                return res.rowcount or 0
        except SQLAlchemyError as e:
            logger.warning("increment %s.%s failed: %s", table, column, e)
            raise CollaboratorError(f"Could not update {table}") from e

    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        model = self._model(table)
        try:
            with self._session_factory() as db:
                res = db.execute(delete(model).where(*self._where(model, filters)))
                db.commit()
                return res.rowcount or 0
        except SQLAlchemyError as e:
            logger.warning("delete from %s failed: %s", table, e)
            raise CollaboratorError(f"Could not delete {table} record") from e
