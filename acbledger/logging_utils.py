"""
Centralized logging for ACBLedger.

All modules log through the ``acbledger`` logger. Nothing is configured on
import; the viewer (or any other entry point) calls ``configure_logging`` once
to attach a console handler and, optionally, a log file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger("acbledger")
logger.addHandler(logging.NullHandler())

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Union[int, str] = logging.INFO,
                      log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """Attach console (and optional file) handlers to the package logger. Idempotent."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)
    kinds = {type(h) for h in logger.handlers}
    if logging.StreamHandler not in kinds:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file is not None:
        path = Path(log_file)
        existing = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        if not any(Path(h.baseFilename) == path.resolve() for h in existing):
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding='utf-8')
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
    return logger


def format_details(details: Optional[Dict[str, Any]] = None) -> str:
    """Format details dictionary as JSON; Decimals and datetimes become strings."""
    if not details:
        return ""
    return json.dumps(details, default=str, sort_keys=True)


def log_event(component: str, message: str, details: Optional[Dict[str, Any]] = None,
              level: int = logging.INFO) -> None:
    """
    Log a normal application event.

    Parameters:
        component: The application component generating the event
        message: The event message
        details: Optional dictionary of additional details
        level: Logging level, INFO unless given
    """
    detail_str = format_details(details)
    logger.log(level, f"[{component}] {message}{' ' + detail_str if detail_str else ''}")


def log_error(component: str, error_type: str, message: str,
              details: Optional[Dict[str, Any]] = None,
              exception: Optional[BaseException] = None) -> None:
    """
    Log an error with its type and, if given, the exception that caused it.

    Parameters:
        component: The application component where the error occurred
        error_type: Short category (e.g. 'ConsistencyError')
        message: Error message
        details: Optional dictionary of additional details
        exception: Optional exception object; its traceback is included
    """
    detail_str = format_details(details)
    logger.error(
        f"[{component}] {error_type}: {message}{' ' + detail_str if detail_str else ''}",
        exc_info=exception,
    )
