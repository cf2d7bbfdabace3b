import logging
import os

from rich.logging import RichHandler
from textual.logging import TextualHandler

_FORMAT = "[%(name)s]  %(message)s"

# loggers handed out so far, so the TUI can reroute all of them at once
_loggers: dict[str, logging.Logger] = {}


class CenteredFormatter(logging.Formatter):
    longest_name_length = 14  # Initial default width

    def __init__(self, fmt=None, datefmt=None, style="%", initial_width=14):
        super().__init__(fmt, datefmt, style)
        CenteredFormatter.longest_name_length = initial_width

    def format(self, record):
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )
        width = CenteredFormatter.longest_name_length
        # format a copy so other handlers still see the raw logger name
        record = logging.makeLogRecord(record.__dict__)
        record.name = record.name.center(width)
        return super().format(record)


def _log_level() -> int:
    return logging.DEBUG if os.getenv("DEBUG") else logging.INFO


def _rich_handler() -> logging.Handler:
    handler = RichHandler(
        show_time=True,
        show_level=True,
        show_path=False,
        rich_tracebacks=True,
        log_time_format="[%X]",
    )
    handler.setFormatter(CenteredFormatter(_FORMAT))
    handler.setLevel(_log_level())
    return handler


def get_logger(name=None) -> logging.Logger:
    """
    Creates and returns a logger configured with RichHandler for rich output.
    """
    if name is None:
        name = "Default"
    logger = logging.getLogger(name)
    logger.setLevel(_log_level())

    if not logger.handlers:
        logger.addHandler(_rich_handler())
        logger.propagate = False
        logger.debug(f"Logger for '{name}' initialized with RichHandler.")

    _loggers[name] = logger
    return logger


def use_textual_handler() -> None:
    """
    Route every known logger to the Textual devtools console.

    Call once the app is running; printing to stderr while Textual owns the
    terminal would corrupt the screen.
    """
    for logger in _loggers.values():
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        handler = TextualHandler()
        handler.setFormatter(CenteredFormatter(_FORMAT))
        handler.setLevel(_log_level())
        logger.addHandler(handler)
