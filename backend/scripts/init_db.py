"""
Initialize the database: create all tables and seed reference data.
Run with: python -m scripts.init_db
"""

import asyncio
from app.database import engine, Base
from app.main import seed_reference_data
import app.models  # noqa: F401  registers every table on Base.metadata


async def init():
    print("Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await seed_reference_data()
    print("All tables created and reference data seeded.")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init())
