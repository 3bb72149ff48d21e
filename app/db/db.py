import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from .models import Base
from .session import engine

from app.utils.logging import get_logger

logger = get_logger()


async def create_tables(bind: Optional[AsyncEngine] = None):
    """Create missing tables and indexes; existing ones are left untouched."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Notification tables are ready.")


async def reset_db(bind: Optional[AsyncEngine] = None):
    """Drop and recreate every table. Development use only."""
    target = bind or engine
    logger.info(f"Resetting database at {target.url.render_as_string()}...")
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await create_tables(target)
    logger.info("Database reset complete.")


if __name__ == "__main__":
    asyncio.run(reset_db())
