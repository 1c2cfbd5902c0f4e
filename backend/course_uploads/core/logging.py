from __future__ import annotations

import sys

from loguru import logger

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO") -> None:
    # Replace loguru's default handler so repeated app creation (tests) doesn't duplicate output.
    logger.remove()
    logger.add(sys.stderr, level=(level or "INFO").upper(), format=_FORMAT)
