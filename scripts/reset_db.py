"""Drop and recreate the booking tables on DATABASE_URL (dev only)."""

import asyncio

from hotel_booking.config import get_settings
from hotel_booking.infrastructure.db.engine import build_engine, create_schema
from hotel_booking.infrastructure.db.tables import metadata


async def reset():
    engine = build_engine(get_settings())
    try:
        async with engine.begin() as conn:
            await conn.run_sync(metadata.drop_all)
            print(f"Dropped {', '.join(t.name for t in reversed(metadata.sorted_tables))}")
        await create_schema(engine)
        print("Recreated all tables.")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(reset())
