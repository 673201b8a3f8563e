"""
Initialize database tables and the default board columns
Run this once: python -m plumberos.db.init_db
"""

import asyncio
import logging

from plumberos.db.database import async_session_factory, init_db
from plumberos.pipeline.store import PipelineStore

logger = logging.getLogger(__name__)


async def main():
    await init_db()
    created = await PipelineStore(async_session_factory).seed_default_buckets()
    logger.info("Seeded %d default buckets", len(created))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logger.info("Creating database tables...")
    asyncio.run(main())
