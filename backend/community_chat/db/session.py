from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool, StaticPool
from community_chat.core.config import settings


def build_engine(db_url: str):
    """
    Async engine for the given URL.
    Only in-memory SQLite shares one connection (it vanishes otherwise). File-backed SQLite and
    PostgreSQL open a connection per session, so one session's rollback never touches another's work.
    """
    if db_url.startswith("sqlite"):
        in_memory = ":memory:" in db_url or db_url.rstrip("/").endswith(":")
        return create_async_engine(
            db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if in_memory else NullPool,
        )

    # For Supabase/PostgreSQL with asyncpg, SSL is specified in the URL, not connect_args
    if "supabase" in db_url and "ssl=" not in db_url:
        db_url = db_url + ("&" if "?" in db_url else "?") + "ssl=require"

    return create_async_engine(
        db_url,
        echo=settings.ENVIRONMENT == "development",
        future=True,
        poolclass=NullPool,
    )


engine = build_engine(settings.DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

async def get_db() -> AsyncSession:
    """
    Dependency for getting an async database session.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
