from __future__ import annotations

import logging

import uvicorn


def _quiet_logging() -> None:
    # Root defaults
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s:%(name)s:%(message)s",
    )

    # Quiet the usual offenders
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> None:
    _quiet_logging()
    # uvicorn turns SIGTERM into the app's shutdown event, which releases the store
    uvicorn.run("formrelay.main:app", host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    main()
