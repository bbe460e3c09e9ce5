"""Entry point for running the PenduHub signaling broker via ``python -m penduhub``."""

from __future__ import annotations

import logging
import os

import uvicorn


def main() -> None:
    """Start the FastAPI-powered signaling broker."""

    logging.basicConfig(
        level=os.environ.get("PENDUHUB_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.environ.get("PENDUHUB_HOST", "0.0.0.0")
    port = int(os.environ.get("PENDUHUB_PORT", "9000"))
    uvicorn.run("penduhub.signaling:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
