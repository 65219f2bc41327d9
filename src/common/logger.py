from __future__ import annotations

import logging
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "peer-rpc"


def setup_logger(level: str = "INFO") -> logging.Logger:
    console = Console(file=sys.stderr, force_terminal=True)
    handler = RichHandler(console=console, markup=False, show_time=True, show_path=False)
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[handler],
    )
    return logging.getLogger(ROOT_LOGGER)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_structured(logger: logging.Logger, level: str, message: str, **fields: Any) -> None:
    line = f"{message} | {fields}" if fields else message
    lvl = level.lower()
    if lvl == "info":
        logger.info(line)
    elif lvl == "warning":
        logger.warning(line)
    elif lvl == "error":
        logger.error(line)
    else:
        logger.debug(line)
