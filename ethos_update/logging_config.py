"""
Logging for the ethos updater.

Update checks run in front of every ethos command, so the console stays
silent unless ``--verbose`` is given. The detached fetch worker has no
terminal at all and writes to ``updates/fetch.log`` instead.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "ethos_update"
FILE_FORMAT = "%(asctime)s %(process)d %(levelname)-7s %(name)s: %(message)s"

_logger: Optional[logging.Logger] = None


class ConsoleFormatter(logging.Formatter):
    """
    One-line console output prefixed with the program name.

    Info and debug lines carry only the message; warnings and errors are
    tagged with their level, highlighted when writing to a terminal.
    """

    PREFIX = "ethos-update"
    HIGHLIGHT = {
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = False):
        super().__init__("%(message)s")
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if record.levelno < logging.WARNING:
            return f"{self.PREFIX}: {message}"

        tag = record.levelname.lower()
        if self.use_colors:
            color = self.HIGHLIGHT.get(record.levelno, self.HIGHLIGHT[logging.CRITICAL])
            tag = f"{color}{tag}{self.RESET}"
        return f"{self.PREFIX}: {tag}: {message}"


def _wants_color(stream) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def setup_logging(
    log_file: Optional[str] = None,
    verbose: bool = False,
    quiet: bool = False,
    propagate: bool = False,
) -> logging.Logger:
    """
    Configure the ``ethos_update`` logger.

    Args:
        log_file: Append everything down to DEBUG to this file
        verbose: Show debug output on the console
        quiet: No console output (the log file, if any, is still written)
        propagate: Pass records on to the root logger (for caplog)

    Returns:
        The configured logger
    """
    global _logger

    if verbose:
        console_level = logging.DEBUG
    elif quiet:
        console_level = logging.WARNING
    else:
        console_level = logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(console_level)

    # stdout carries command output, so the console handler uses stderr
    if not quiet:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(console_level)
        console.setFormatter(ConsoleFormatter(use_colors=_wants_color(sys.stderr)))
        logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
        logger.addHandler(file_handler)
        logger.setLevel(logging.DEBUG)

    logger.propagate = propagate
    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Return the package logger, setting it up quietly on first use (verbose under ETHOS_DEBUG=1)."""
    global _logger
    if _logger is None:
        debug = os.environ.get("ETHOS_DEBUG", "0") == "1"
        _logger = setup_logging(verbose=debug, quiet=not debug)
    return _logger
