import uvicorn
import os
from constants import LOG_FILE, LOG_LEVEL
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    reload = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")
    logger.info(f"Starting room registry server on {host}:{port}")
    uvicorn.run("app:app", host=host, port=port, reload=reload, log_config=None)
