import logging
from colorlog import ColoredFormatter
from app.core.settings import settings

LOGGER_NAME = "prestamos"

LOG_FORMAT = (
    "%(log_color)s[%(asctime)s] [%(levelname)-8s] "
    "%(reset)s%(blue)s%(name)s:%(reset)s %(message)s"
)

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def configure_logging(level: str) -> logging.Logger:
    """Attach the colored stream handler to the project logger (once)."""
    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(level.upper())
    if not log.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            ColoredFormatter(
                LOG_FORMAT,
                datefmt="%Y-%m-%d %H:%M:%S",
                reset=True,
                log_colors=LOG_COLORS,
            )
        )
        log.addHandler(handler)
    log.propagate = False
    return log


logger = configure_logging(settings.LOG_LEVEL)
