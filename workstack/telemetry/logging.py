"""Lightweight structured logging utilities.

Environment variables:
- WORKSTACK_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default INFO)
"""
from __future__ import annotations

import logging
import os
from typing import Optional, Dict


_CONFIGURED = False


class _ContextAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):  # type: ignore[override]
        ctx = " ".join(f"{k}={v}" for k, v in self.extra.items())
        return f"[{ctx}] {msg}", kwargs


def _configure_once() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return
    level = os.getenv("WORKSTACK_LOG_LEVEL", "INFO").upper()
    lvl = getattr(logging, level, None)
    if not isinstance(lvl, int):
        lvl = logging.INFO
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _CONFIGURED = True


def get_logger(name: str, context: Optional[Dict[str, object]] = None) -> logging.Logger:
    _configure_once()
    logger = logging.getLogger(name)
    if context:
        # Prepend context to messages via adapter
        return _ContextAdapter(logger, dict(context))  # type: ignore[return-value]
    return logger
