import asyncio
import structlog

from community_chat.db.base import Base
from community_chat.db.session import engine

# Import all models so Base knows about them
from community_chat.models.room import Room, RoomMember  # noqa: F401
from community_chat.models.message import Message  # noqa: F401

logger = structlog.get_logger()


async def init_models(bind=None):
    """
    Create the chat tables if they are missing.
    """
    bind = bind or engine
    try:
        async with asyncio.timeout(10):
            async with bind.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
    except TimeoutError:
        logger.error("db_init_timeout", message="Connection to database timed out after 10s.")
        raise
    logger.info("db_init_complete")


if __name__ == "__main__":
    from community_chat.core.logging import setup_logging

    setup_logging()
    asyncio.run(init_models())
