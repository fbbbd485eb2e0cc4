import logging
import sys

import uvicorn

from src.api.config import ConfigurationError, get_settings

logger = logging.getLogger("src.api")


# PUBLIC_INTERFACE
def main() -> None:
    """Load settings, then serve the app. Exits non-zero before binding if credentials are missing."""
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        logging.basicConfig(level=logging.ERROR)
        logger.error("%s", exc)
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting server on http://%s:%d", settings.bind_host, settings.bind_port)
    uvicorn.run(
        "src.api.main:app",
        host=settings.bind_host,
        port=settings.bind_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
