"""Structured logging helpers for the TFIAC integration."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any


def _render(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _render(item) for key, item in value.items()}
    return value


def _format_fields(fields: dict[str, Any]) -> str:
    return ", ".join(
        f"{key}={_render(value)}" for key, value in fields.items() if value is not None
    )


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc_info: bool = False,
    **fields: Any,
) -> None:
    """Log `event | key=value, ...`, skipping fields that are None."""
    if not logger.isEnabledFor(level):
        return
    details = _format_fields(fields)
    if details:
        logger.log(level, "%s | %s", event, details, exc_info=exc_info)
    else:
        logger.log(level, "%s", event, exc_info=exc_info)


def log_debug(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Log a debug event."""
    log_event(logger, logging.DEBUG, event, **fields)


def log_info(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Log an info event."""
    log_event(logger, logging.INFO, event, **fields)


def log_warning(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Log a warning event."""
    log_event(logger, logging.WARNING, event, **fields)


def log_error(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Log an error event with the active exception attached."""
    log_event(logger, logging.ERROR, event, exc_info=True, **fields)
