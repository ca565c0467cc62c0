import unittest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from community_chat.db.init_db import Base
from community_chat.db.session import build_engine


class ChatDatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """
    Fresh in-memory SQLite database per test, with the same session settings the app uses.
    """

    async def asyncSetUp(self):
        self.engine = build_engine("sqlite+aiosqlite:///:memory:")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.Session = async_sessionmaker(bind=self.engine, class_=AsyncSession, expire_on_commit=False)
        self.session = self.Session()

    async def asyncTearDown(self):
        await self.session.close()
        await self.engine.dispose()
