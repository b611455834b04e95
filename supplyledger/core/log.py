"""
supplyledger/core/log.py

Logging setup for processes that host a ledger (the CLI, services).

Library modules only call logging.getLogger(__name__); nothing below runs
unless the host asks for it.
"""

import logging
from typing import Union


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_HANDLER_NAME = "supplyledger-stream"


def configure_logging(level: Union[int, str] = logging.WARNING) -> logging.Logger:
    """
    Attach one stream handler to the 'supplyledger' logger and set its level.
    Safe to call repeatedly; the handler is installed once.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    root = logging.getLogger("supplyledger")
    root.setLevel(level)

    if not any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    return root
