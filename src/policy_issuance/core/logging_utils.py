"""Central logging utilities for the policy issuance service.

This module enforces a consistent logging configuration across the entire
code-base and provides convenience helpers for retrieving module-scoped
loggers and for rendering raw gateway payloads into log lines.

Key Features
------------
1. configure_logging(): idempotent initialization of the root logger.
2. get_logger(name): typed helper that always returns a configured logger.
3. render_payload(payload): stable, single-line JSON rendering of inbound
   callback payloads so they can be replayed from the logs.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Final

from beartype import beartype

__all__: Final = [
    "configure_logging",
    "get_logger",
    "render_payload",
]

_DEFAULT_LOG_FORMAT: Final = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_ROOT_LOGGER_NAME: Final = "policy_issuance"
_is_configured: bool = False


@beartype
def configure_logging(
    *, level: int = logging.INFO, fmt: str = _DEFAULT_LOG_FORMAT
) -> None:
    """Configure the root logger exactly once.

    Calling this function multiple times is safe – configuration will only
    be applied on the first invocation.
    """
    global _is_configured
    if _is_configured:
        return

    logging.basicConfig(level=level, format=fmt)
    _is_configured = True


@beartype
def get_logger(name: str | None = None, *, level: int | None = None) -> logging.Logger:
    """Return a module-scoped logger that is guaranteed to be configured."""
    configure_logging()
    logger = logging.getLogger(name or _ROOT_LOGGER_NAME)
    if level is not None:
        logger.setLevel(level)
    return logger


@beartype
def render_payload(payload: Mapping[str, Any]) -> str:
    """Render a raw payload as compact JSON with sorted keys.

    Values that are not JSON serializable are rendered through ``str`` so a
    malformed payload can never break the log call itself.
    """
    return json.dumps(dict(payload), sort_keys=True, default=str, ensure_ascii=False)
