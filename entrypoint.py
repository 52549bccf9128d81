import os

import uvicorn

from constants import HOST, LOG_FILE, LOG_LEVEL, PORT
from logging_config import get_logger, setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

logger = get_logger(__name__)


def main():
    reload = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")
    logger.info(f"Starting watch party sync server on {HOST}:{PORT}")
    uvicorn.run("app:app", host=HOST, port=PORT, reload=reload)


if __name__ == "__main__":
    main()
