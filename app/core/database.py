"""
Database connection and session management.

Every session is an AsyncSession over GuardedSession, so the read filter in
app.core.enforcement applies to all ORM selects made through it.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from app.core.config import get_settings
from app.core.enforcement import GuardedSession

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
)


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind,
        class_=AsyncSession,
        sync_session_class=GuardedSession,
        expire_on_commit=False,
    )


async_session_factory = build_session_factory(engine)


async def init_db(bind: AsyncEngine = engine):
    """Create all tables (development and tests)."""
    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions. One session per request."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

