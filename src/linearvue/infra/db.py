from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.schema import MetaData
from sqlalchemy.types import TypeDecorator

from linearvue.infra.settings import settings

# Deterministic constraint/index names (prevents Alembic churn)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as UTC.

    SQLite drops tzinfo on the way back; values read through this type are
    always aware UTC datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires timezone-aware datetimes")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _engine_kwargs(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": settings.connect_timeout}}
    return {
        "pool_size": settings.pool_size,
        "max_overflow": settings.max_overflow,
        "pool_timeout": settings.pool_timeout,
        "connect_args": {"connect_timeout": settings.connect_timeout}
        if "postgresql" in url
        else {},
    }


def install_sqlite_pragmas(target: Engine) -> None:
    """Enable foreign keys on SQLite so channel deletes cascade to blocks."""
    if target.dialect.name != "sqlite":
        return

    @event.listens_for(target, "connect")
    def _enable_foreign_keys(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_engine(
    settings.database_url,
    echo=settings.echo_sql,
    pool_pre_ping=True,
    future=True,
    **_engine_kwargs(settings.database_url),
)
install_sqlite_pragmas(engine)


SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def get_engine(db_url: str | None = None) -> Engine:
    """Module engine for the configured URL, or a fresh engine for ``db_url``."""
    if not db_url or db_url == settings.database_url:
        return engine

    created = create_engine(
        db_url,
        echo=False,
        pool_pre_ping=True,
        future=True,
        **_engine_kwargs(db_url),
    )
    install_sqlite_pragmas(created)
    return created


def init_db(bind: Engine | None = None) -> None:
    """Create all tables known to the ORM metadata (development convenience)."""
    import linearvue.domain.entities  # noqa: F401  (register mappers)

    Base.metadata.create_all(bind=bind or engine)

