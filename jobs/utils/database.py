"""Database engine and session factory for the sweeper process."""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.config.settings import settings


def create_task_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the engine used by the monitor jobs."""
    url = database_url or settings.get_database_url()
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.database_echo)
    return create_async_engine(
        url,
        echo=settings.database_echo,
        poolclass=NullPool,
    )


def create_task_session_maker(
    engine: AsyncEngine | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Create a session factory; records stay readable after commit."""
    if engine is None:
        engine = create_task_engine()
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Ready-to-use instances
task_engine = create_task_engine()
task_session_maker = create_task_session_maker(task_engine)
