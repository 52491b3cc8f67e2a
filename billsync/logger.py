"""Lightweight logging helpers shared by the API and operator scripts."""

from __future__ import annotations

import logging
from typing import Any, Optional

_LOGGER = logging.getLogger("billsync")


def _coerce(parts: tuple[object, ...]) -> str:
    rendered = " ".join(str(part) for part in parts if part is not None)
    return rendered.strip()


def configure_logging(level: Optional[str] = None) -> None:
    """Install a basic handler once, honouring ``LOG_LEVEL``."""

    if level is None:
        from .config import CONFIG

        level = getattr(CONFIG, "log_level", "INFO")
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=resolved,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    _LOGGER.setLevel(resolved)


def log(*parts: object, **metadata: Any) -> None:
    """
    Emit an info-level log message.

    Keyword arguments are appended to the message so scripts can attach
    identifiers (``subscription_id=...``) without building strings by hand.
    """

    message = _coerce(parts)
    if metadata:
        message = f"{message} | {metadata}"

    if not _LOGGER.handlers and not logging.getLogger().handlers:
        configure_logging()

    _LOGGER.info(message)


__all__ = ["configure_logging", "log"]
