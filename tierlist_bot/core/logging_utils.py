"""Logging helpers that keep configuration consistent across modules."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ROOT_LOGGER = "tierlist_bot"


def resolve_level(level: Union[int, str, None], default: int = logging.INFO) -> int:
    """Accept ``"debug"``/``"INFO"``/``10`` and fall back to ``default``."""
    if isinstance(level, int):
        return level
    if not level:
        return default
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else default


def configure_library_logging(
    *,
    level: Union[int, str] = logging.INFO,
    fmt: str = DEFAULT_FORMAT,
    handlers: Optional[Iterable[logging.Handler]] = None,
) -> logging.Logger:
    """Return the package logger configured with the common format."""

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(resolve_level(level))
    logger.handlers.clear()

    if handlers:
        for handler in handlers:
            handler.setFormatter(logging.Formatter(fmt))
            logger.addHandler(handler)
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(handler)

    logger.propagate = False
    return logger


__all__ = ["configure_library_logging", "resolve_level"]
