# scripts/init_db.py
import asyncio

from formrelay.db import manager


async def main() -> None:
    try:
        await manager.create_all()
    finally:
        await manager.shutdown()
    print("OK: created all tables (idempotent).")


if __name__ == "__main__":
    asyncio.run(main())
