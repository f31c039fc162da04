# scripts/add_endpoint.py
from __future__ import annotations

import argparse
import asyncio
import uuid

from formrelay.adapters.repos.submissions import SubmissionStore
from formrelay.db import async_session, manager


async def main(url: str, key: str | None, disabled: bool) -> None:
    key = key or uuid.uuid4().hex
    try:
        await manager.create_all()
        async with async_session() as session:
            store = SubmissionStore(session)
            await store.create_webhook_endpoint(key, url, enabled=not disabled)
            await store.commit()
    finally:
        await manager.shutdown()

    print(f"OK: key={key} url={url} enabled={not disabled}")


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Register a client webhook endpoint")
    ap.add_argument("url")
    ap.add_argument("--key", default=None, help="32 hex chars; generated when omitted")
    ap.add_argument("--disabled", action="store_true")
    args = ap.parse_args()
    asyncio.run(main(args.url, args.key, args.disabled))
