"""Logging setup for the mail-dispatch service."""

from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Attach a stream handler to the ``mail_dispatch`` logger tree.

    Safe to call more than once; the handler is only added the first time.
    """
    root = logging.getLogger("mail_dispatch")
    root.setLevel(level.upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
