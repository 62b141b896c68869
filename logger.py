import os
import sys
import logging

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


class SimpleFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            fmt="[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def get_logger(name: str = "tcg_investor") -> logging.Logger:
    logger = logging.getLogger(name)

    # Already configured
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(SimpleFormatter())
    logger.addHandler(handler)
    return logger
