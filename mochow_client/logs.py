# mochow_client/logs.py
import logging

FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(level: int | str = logging.WARNING) -> logging.Logger:
    """Attach a stream handler to the "mochow" logger once and set its level."""
    logger = logging.getLogger("mochow")
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(FORMAT))
        logger.addHandler(handler)
    logger.propagate = False
    return logger
