import logging
import sys

LOGGER_NAME = "authflow"

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a stdout handler to the ``authflow`` logger.

    Module loggers (``logging.getLogger(__name__)``) propagate up to it.
    Safe to call more than once; only the level is updated on later calls.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Keep auth events out of whatever the root logger is wired to
    logger.propagate = False

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)

    return logger
