import logging
from pythonjsonlogger import jsonlogger
from aptitude.core.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.LOG_LEVEL, logging.INFO)
    if settings.LOG_FORMAT == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
        logging.basicConfig(level=level, handlers=[handler], force=True)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
