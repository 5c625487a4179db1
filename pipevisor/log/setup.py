import sys
import logging
from typing import Optional

PROC_LOGGER_PREFIX = "proc."


class MaxLevelFilter(logging.Filter):
    """
    Lets through only records strictly below a given level.
    Keeps stdout free of the records that the stderr handler already prints.
    """
    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record):
        return record.levelno < self.max_level


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and tagged child output lines."""

    def format(self, record):
        # Child output and status lines: '[<tag>] <line>' with nothing else around it.
        if record.name.startswith(PROC_LOGGER_PREFIX):
            return f"[{record.name[len(PROC_LOGGER_PREFIX):]}] {record.getMessage()}"

        # Otherwise, use the default formatting.
        original_format = self._style._fmt
        self._style._fmt = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'
        formatted_message = super().format(record)
        self._style._fmt = original_format
        return formatted_message


def get_proc_logger(tag: str) -> logging.Logger:
    """Returns the logger whose records are rendered as '[<tag>] ...' lines."""
    return logging.getLogger(f"{PROC_LOGGER_PREFIX}{tag}")


def _pass_raw_bytes(stream):
    """
    Lets lines holding undecodable child bytes (as lone surrogates) be
    written back as the original bytes instead of failing to encode.
    """
    reconfigure = getattr(stream, "reconfigure", None)
    if reconfigure is not None:
        reconfigure(errors="surrogateescape")
    return stream


def setup_logging(console_level: int = logging.INFO, stdout=None, stderr=None) -> None:
    """
    Configures the root logger for the supervisor.
    Records below WARNING go to stdout and the rest to stderr, so a child's
    stderr lines (logged at ERROR) end up on the supervisor's stderr.
    Previously configured handlers are cleared to prevent duplication.

    :param console_level: The lowest level printed (e.g., logging.INFO).
    :param stdout: Stream for regular records, defaults to sys.stdout.
    :param stderr: Stream for warnings and errors, defaults to sys.stderr.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    formatter = MainFormatter()

    # --- stdout Handler ---
    stdout_handler = logging.StreamHandler(_pass_raw_bytes(stdout if stdout is not None else sys.stdout))
    stdout_handler.setLevel(console_level)
    stdout_handler.addFilter(MaxLevelFilter(logging.WARNING))
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    # --- stderr Handler ---
    stderr_handler = logging.StreamHandler(_pass_raw_bytes(stderr if stderr is not None else sys.stderr))
    stderr_handler.setLevel(max(console_level, logging.WARNING))
    stderr_handler.setFormatter(formatter)
    root_logger.addHandler(stderr_handler)


def flush_logging(logger: Optional[logging.Logger] = None) -> None:
    """Flushes every handler on the root logger, used before an immediate exit."""
    for handler in (logger or logging.getLogger()).handlers:
        try:
            handler.flush()
        except (OSError, ValueError):
            pass
