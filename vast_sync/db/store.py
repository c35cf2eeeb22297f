"""
Relational store access.

Each :class:`Collection` wraps one table and exposes the operations the engine
relies on: filtered select, count, insert (single and many), update and
delete by predicate. Every call runs in its own short transaction and either
returns rows / a row count or raises StoreError; nothing spans tables, so
stages that touch several tables must be re-runnable phase by phase.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from sqlalchemy import create_engine, delete, func, insert, select, text, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from ..exceptions import StoreError
from .models import (
    AreaHierarchy,
    Base,
    FinanceApplication,
    ImageCleanupLog,
    Promoter,
    Sale,
    Store,
    UserProfile,
)

logger = logging.getLogger(__name__)


class Collection:
    """Per-table gateway with independent, auto-committed calls."""

    def __init__(self, engine: Engine, model):
        self.engine = engine
        self.model = model
        self.table = model.__table__
        self.name = self.table.name

    @property
    def c(self):
        return self.table.c

    def _run(self, action: str, fn: Callable[[Connection], Any]) -> Any:
        try:
            with self.engine.begin() as conn:
                return fn(conn)
        except SQLAlchemyError as exc:
            logger.error("%s on %s failed: %s", action, self.name, exc)
            raise StoreError(f"{action} failed", table=self.name, original_error=exc) from exc

    def select(
        self,
        *where,
        columns: Iterable[str] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict]:
        cols = [self.c[name] for name in columns] if columns else [self.table]
        stmt = select(*cols).where(*where)
        if order_by is not None:
            col = self.c[order_by]
            stmt = stmt.order_by(col.desc() if descending else col.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._run(
            "select", lambda conn: [dict(row._mapping) for row in conn.execute(stmt)]
        )

    def first(self, *where, **kwargs) -> dict | None:
        rows = self.select(*where, limit=1, **kwargs)
        return rows[0] if rows else None

    def count(self, *where) -> int:
        stmt = select(func.count()).select_from(self.table).where(*where)
        return self._run("count", lambda conn: conn.execute(stmt).scalar_one())

    def min(self, column: str, *where) -> Any:
        stmt = select(func.min(self.c[column])).where(*where)
        return self._run("min", lambda conn: conn.execute(stmt).scalar())

    def max(self, column: str, *where) -> Any:
        stmt = select(func.max(self.c[column])).where(*where)
        return self._run("max", lambda conn: conn.execute(stmt).scalar())

    def insert(self, record: dict) -> dict:
        """Insert one row and return it with its primary key filled in."""

        def _insert(conn: Connection) -> dict:
            result = conn.execute(insert(self.table).values(**record))
            row = dict(record)
            pk = result.inserted_primary_key
            if pk:
                row.setdefault("id", pk[0])
            return row

        return self._run("insert", _insert)

    def insert_many(self, records: list[dict]) -> int:
        if not records:
            return 0

        def _insert_many(conn: Connection) -> int:
            rowcount = conn.execute(insert(self.table), records).rowcount
            # some drivers report -1 for executemany
            return rowcount if rowcount >= 0 else len(records)

        return self._run("insert", _insert_many)

    def update(self, values: dict, *where) -> int:
        stmt = update(self.table).where(*where).values(**values)
        return self._run("update", lambda conn: conn.execute(stmt).rowcount)

    def delete(self, *where) -> int:
        stmt = delete(self.table).where(*where)
        return self._run("delete", lambda conn: conn.execute(stmt).rowcount)


class Database:
    """The collections of one relational store."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.stores = Collection(engine, Store)
        self.promoters = Collection(engine, Promoter)
        self.user_profiles = Collection(engine, UserProfile)
        self.sales = Collection(engine, Sale)
        self.finance_applications = Collection(engine, FinanceApplication)
        self.area_hierarchy = Collection(engine, AreaHierarchy)
        self.image_cleanup_logs = Collection(engine, ImageCleanupLog)

    def table(self, name: str) -> Collection:
        """Collection for a table name (e.g. ``"sales"``)."""
        for value in vars(self).values():
            if isinstance(value, Collection) and value.name == name:
                return value
        raise KeyError(name)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def ping(self) -> None:
        """Round-trip ``SELECT 1``; raises StoreError when the store is unreachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise StoreError("connection check failed", original_error=exc) from exc


def create_store_engine(database_url: str, echo: bool = False) -> Engine:
    """Engine for ``database_url``; in-memory SQLite shares one connection."""
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
    return create_engine(database_url, pool_pre_ping=True, echo=echo)


def connect(database_url: str, create_tables: bool = False) -> Database:
    db = Database(create_store_engine(database_url))
    if create_tables:
        db.create_all()
    logger.info("Connected to %s", db.engine.url.render_as_string(hide_password=True))
    return db
