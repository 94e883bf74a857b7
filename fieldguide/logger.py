"""Loguru sink setup. Stdout belongs to the MCP stdio stream, so logs go to stderr."""

import sys

from loguru import logger


def configure_logging(debug: bool = False) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO")
