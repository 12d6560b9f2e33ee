"""Run the Hookwire API server.

Usage:
    python -m hookwire --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import argparse
import os

import uvicorn

from hookwire.logging import get_logger

logger = get_logger("hookwire")


def main() -> None:
    """Parse arguments and start uvicorn."""
    parser = argparse.ArgumentParser(description="Run the Hookwire webhook API")
    parser.add_argument(
        "--host", type=str, default=os.getenv("HOST", "0.0.0.0"), help="Host to bind"
    )
    parser.add_argument(
        "--port", type=int, default=int(os.getenv("PORT", "8000")), help="Port to listen on"
    )
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    logger.info("Starting Hookwire", host=args.host, port=args.port)
    # A single worker: the retry scheduler runs inside the app process
    uvicorn.run(
        "hookwire.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1,
    )


if __name__ == "__main__":
    main()
