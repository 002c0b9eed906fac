"""
Process-wide logging setup.

Module code only ever does `logging.getLogger(__name__)`; this is the one
place that decides level and format. Output goes to stdout so Gunicorn /
the container runtime captures it alongside the access log.
"""
from __future__ import annotations

import logging
import sys

from bookclub.core.config import settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())
    # Uvicorn reloads and test clients call this more than once.
    if any(getattr(h, "_bookclub", False) for h in root.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._bookclub = True  # type: ignore[attr-defined]
    root.addHandler(handler)
