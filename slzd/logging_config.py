"""
Logging setup for the 'slzd' namespace.

Modules log through ``logging.getLogger(__name__)``; records from the bridge
may carry an ``EmptyInputWarning`` in ``record.diagnostic``, which the
formatter below appends as ``cloud=... direction=...``.
"""
import logging
import sys
from typing import Optional, Union

PACKAGE_LOGGER = "slzd"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class DiagnosticFormatter(logging.Formatter):
    """Append the structured empty-cloud diagnostic, if any, to the message."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        diagnostic = getattr(record, "diagnostic", None)
        if diagnostic is not None:
            text += f" (cloud={diagnostic.cloud_name} direction={diagnostic.direction})"
        return text


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach a stdout handler (and optionally a file handler) to the package
    logger. Calling it again replaces the handlers instead of stacking them.

    Args:
        level: Logging level, as a number or a name such as "DEBUG".
        log_file: Optional path; the file is overwritten.

    Returns:
        The configured 'slzd' logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level name: {level}")

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = DiagnosticFormatter(LOG_FORMAT, datefmt="%H:%M:%S")
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.debug("Logging initialized at %s", logging.getLevelName(level))
    return logger
