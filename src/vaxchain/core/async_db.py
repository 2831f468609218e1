import os

import structlog
from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .models import Base, VaccineBlock

logger = structlog.get_logger(__name__)

# Columns added after the first deployments; tables created before them are
# upgraded in place by ``init_models``.
ADDED_COLUMNS = {
    "payload": "TEXT",
}


def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine; makes sure a SQLite file's directory exists."""
    url = make_url(database_url)
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        connect_args = {"check_same_thread": False}
        if url.database and url.database != ":memory:":
            db_dir = os.path.dirname(url.database)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
    return create_async_engine(database_url, echo=False, connect_args=connect_args)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _add_missing_columns(conn: Connection) -> None:
    table = VaccineBlock.__tablename__
    existing = {column["name"] for column in inspect(conn).get_columns(table)}
    for name, ddl_type in ADDED_COLUMNS.items():
        if name not in existing:
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl_type}"))
            logger.info("schema_column_added", table=table, column=name)


async def init_models(engine: AsyncEngine) -> None:
    """Create the ledger tables, or add columns missing from older ones."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(_add_missing_columns)
