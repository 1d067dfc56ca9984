"""Shared logging for JARVIS.

All modules log through ``logger`` (named ``jarvis``). Per-connection code uses
``session_logger`` so every line of a voice session carries its id. The level
comes from the LOG_LEVEL environment variable.
"""

import logging
import os
import sys
from typing import Optional

log_level_value = os.getenv("LOG_LEVEL", "INFO")
log_level = getattr(logging, log_level_value.upper(), logging.INFO)

log_format = "%(asctime)s - %(levelname)s - %(name)s - [%(process)d] %(message)s"

logging.basicConfig(
    level=log_level,
    format=log_format,
    stream=sys.stdout,
    force=True,
)

# Upstream HTTP clients and the upload parser are chatty at INFO
for noisy in ("httpx", "httpcore", "asyncio", "urllib3", "multipart", "watchfiles"):
    logging.getLogger(noisy).setLevel(logging.WARNING)


class SessionLoggerAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"Session {self.extra['session_id']}: {msg}", kwargs


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return ``jarvis`` or one of its children, e.g. ``get_logger("session")``."""
    return logging.getLogger(f"jarvis.{name}" if name else "jarvis")


def session_logger(session_id: str) -> SessionLoggerAdapter:
    return SessionLoggerAdapter(get_logger("session"), {"session_id": session_id})


logger = get_logger()
