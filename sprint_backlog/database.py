from typing import Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from .config import settings
from .models.base import Base


def engine_options(database_url: str) -> Dict[str, Any]:
    """Driver-specific engine arguments."""
    if database_url.startswith("sqlite"):
        # aiosqlite runs the connection in its own thread
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    **engine_options(settings.database_url)
)

# Create session factory
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def create_tables(bind: AsyncEngine = engine) -> None:
    """Create every table registered on the model metadata."""
    # Registers every mapped class on Base.metadata
    from .models import backlog, project, sprint, user, worklog

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Dependency to get database session
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
