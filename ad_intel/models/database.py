import uuid
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import create_engine, event, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ad_intel.config import DATABASE_URL, DATA_DIR
from ad_intel.errors import StorageError

Base = declarative_base()

engine = create_engine(DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on."""
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def new_id() -> str:
    """Fresh opaque identifier for businesses and brands."""
    return str(uuid.uuid4())


def init_db(bind=None):
    """Create all tables."""
    # Import models so they register on Base.metadata
    from ad_intel import models  # noqa: F401

    bind = bind or engine
    if bind.dialect.name == "sqlite":
        DATA_DIR.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=bind)


def upsert_rows(db: Session, model, rows: list[dict], conflict_columns: Iterable[str]) -> int:
    """
    Insert rows, overwriting existing rows that collide on conflict_columns.

    All rows must carry the same keys. The primary key and created_at are never
    overwritten; updated_at is refreshed when the model has one.

    Returns:
        Number of rows sent to the database
    """
    if not rows:
        return 0

    conflict_columns = list(conflict_columns)
    table = model.__table__
    dialect = db.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise StorageError(f"Upsert is not supported on dialect {dialect!r}")

    now = datetime.utcnow()
    if "updated_at" in table.c:
        rows = [{**row, "updated_at": now} for row in rows]
    if "created_at" in table.c:
        rows = [{"created_at": now, **row} for row in rows]

    stmt = insert(table)
    skip = set(conflict_columns) | {c.name for c in table.primary_key.columns} | {"created_at"}
    stmt = stmt.on_conflict_do_update(
        index_elements=conflict_columns,
        set_={name: stmt.excluded[name] for name in rows[0] if name not in skip},
    )

    try:
        db.execute(stmt, rows)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Upsert into {table.name} failed: {e}") from e

    return len(rows)


def count_rows(db: Session, model, **filters) -> int:
    """Exact count of rows matching the given column=value filters."""
    query = db.query(func.count()).select_from(model)
    for column, value in filters.items():
        query = query.filter(getattr(model, column) == value)

    try:
        return query.scalar() or 0
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Count on {model.__tablename__} failed: {e}") from e


def fetch_rows(db: Session, model, columns: Optional[list] = None, **filters) -> list:
    """Exact-match filtered read. Filters with a list value become IN clauses."""
    query = db.query(*columns) if columns else db.query(model)
    for column, value in filters.items():
        attr = getattr(model, column)
        query = query.filter(attr.in_(value) if isinstance(value, (list, tuple, set)) else attr == value)

    try:
        return query.all()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Read from {model.__tablename__} failed: {e}") from e
