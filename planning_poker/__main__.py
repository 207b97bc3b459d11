import uvicorn

from . import config
from .logging_config import get_logger, setup_logging

# Setup logging before importing app
setup_logging(log_level=config.LOG_LEVEL, log_file=config.LOG_FILE)

logger = get_logger(__name__)


def main() -> None:
    logger.info("Starting planning poker server on %s:%s", config.HOST, config.PORT)
    uvicorn.run("planning_poker.app:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
