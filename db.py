import os
from contextlib import asynccontextmanager
from typing import List, Optional

from sqlmodel import SQLModel
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine

from logger import get_logger

log = get_logger("db")

DATABASE_URL = os.getenv("DATABASE_URL")

engine: Optional[AsyncEngine] = None
async_session: Optional[async_sessionmaker] = None


def configure(url: Optional[str] = DATABASE_URL) -> bool:
    """Create the engine for `url`. Returns False (demo mode) when no URL is set."""
    global engine, async_session
    if not url:
        log.warning("⚠️ DATABASE_URL not set, running in demo mode")
        engine = None
        async_session = None
        return False
    engine = create_async_engine(url, echo=False)
    async_session = async_sessionmaker(engine, expire_on_commit=False)
    return True


def is_configured() -> bool:
    return async_session is not None


async def init_models():
    if engine is None:
        return
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    log.info("✅ Database initialized.")


@asynccontextmanager
async def get_session() -> AsyncSession:
    if async_session is None:
        raise RuntimeError("Database is not configured")
    async with async_session() as session:
        yield session


def upsert(session: AsyncSession, table, rows: List[dict], conflict_cols: List[str]):
    """
    INSERT ... ON CONFLICT (conflict_cols) DO UPDATE for every non-key column.
    """
    dialect = session.get_bind().dialect.name
    insert = sqlite.insert if dialect == "sqlite" else postgresql.insert

    stmt = insert(table).values(rows)
    update_cols = {
        col: stmt.excluded[col]
        for col in rows[0].keys()
        if col not in conflict_cols and col not in ("id", "created_at")
    }
    return stmt.on_conflict_do_update(index_elements=conflict_cols, set_=update_cols)
