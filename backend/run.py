import argparse
import logging
import os

import uvicorn

from backend.core.logging import setup_logging

logger = logging.getLogger("gridpulse.run")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the GridPulse replay server")
    parser.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", 5000)))
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (dev)")
    args = parser.parse_args()

    setup_logging()
    logger.info("Starting GridPulse on %s:%d", args.host, args.port)
    uvicorn.run("backend.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
