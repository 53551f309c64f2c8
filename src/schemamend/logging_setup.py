"""
Logging setup for schemamend.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .config import LoggingConfig


def configure_logging(config: Optional[LoggingConfig] = None, debug: bool = False) -> None:
    """
    Configure the ``schemamend`` logger.

    Console output goes to stderr through rich so it never mixes with
    JSON or SQL written to stdout. A rotating file handler is added when
    ``config.file`` is set.
    """
    config = config or LoggingConfig()
    level = logging.DEBUG if debug else getattr(logging, config.level)

    logger = logging.getLogger("schemamend")
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=debug,
        rich_tracebacks=debug,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_size,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(config.format))
        logger.addHandler(file_handler)
