"""Logging setup for the command line entry point."""

import logging
from typing import Union

from rich.console import Console
from rich.logging import RichHandler


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Union[int, str] = logging.WARNING, rich: bool = True) -> None:
    """Configure root logging once for the process.

    Args:
        level: Log level name or number
        rich: Render records through rich on stderr instead of plain lines
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    if rich:
        logging.basicConfig(
            level=level,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
            force=True,
        )
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT, force=True)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
