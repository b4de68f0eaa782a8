"""Root logger setup for the hub and its launcher."""
from __future__ import annotations

import logging
from typing import Any, Optional

from .config import HubSettings

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def _parse_level(value: Any, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip().upper()
    if text in _LEVELS:
        return _LEVELS[text]
    try:
        return int(text)
    except ValueError:
        return default


def configure_logging(settings: HubSettings, *, override_level: Optional[str] = None) -> None:
    """Install a single stream handler on the root logger.

    Safe to call more than once; previously installed root handlers are
    replaced rather than stacked.
    """
    level = _parse_level(override_level or settings.log_level, logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=settings.log_format))

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)

    logging.captureWarnings(True)
