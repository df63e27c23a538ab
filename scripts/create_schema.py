#!/usr/bin/env python3
"""
Script to create the booking engine tables in the configured database.

    python scripts/create_schema.py         # create missing tables
    python scripts/create_schema.py drop    # drop every table
"""

import asyncio
import sys

import booking_engine.models  # noqa: F401
from booking_engine.core.config import settings
from booking_engine.core.database import create_tables, drop_tables, engine


def _masked_url() -> str:
    url = settings.DATABASE_URL
    if "@" not in url:
        return url
    scheme, rest = url.split("://", 1)
    return f"{scheme}://***@{rest.split('@', 1)[1]}"


async def main(drop: bool) -> bool:
    action = "Dropping" if drop else "Creating"
    print(f"{action} tables in {_masked_url()}")

    try:
        if drop:
            await drop_tables()
            print("✅ Dropped all tables")
        else:
            tables = await create_tables()
            print("✅ Created tables: " + ", ".join(tables))
    except Exception as e:
        print(f"❌ Error: {e}")
        print("\nCheck that DATABASE_URL points at a running database.")
        return False
    finally:
        await engine.dispose()

    return True


if __name__ == "__main__":
    drop = len(sys.argv) > 1 and sys.argv[1] == "drop"
    sys.exit(0 if asyncio.run(main(drop)) else 1)
