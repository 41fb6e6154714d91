#!/usr/bin/env python3
"""
Initialize database with all tables
"""
import asyncio

from dotenv import load_dotenv

load_dotenv()

from sprint_backlog.database import create_tables, engine
from sprint_backlog.models.base import Base


async def init_database():
    """Create all tables"""
    print("Initializing database...")
    await create_tables()
    print(f"Tables: {', '.join([t.name for t in Base.metadata.sorted_tables])}")

    await engine.dispose()
    print("Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_database())
