"""
Logging setup.

Every module logs through ``logging.getLogger(__name__)`` with a bracketed
component tag at the start of the message ("[ENGINE] ...", "[UDP] ...").
configure_logging() attaches a console handler and the /logs WebSocket
handler to the package logger exactly once.
"""

import logging
import sys

from triptrack.Core.log_ws import WebSocketLogHandler, log_ws_manager

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s %(message)s"
PACKAGE_LOGGER = "triptrack"

_configured = False


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """
    Configure the ``triptrack`` logger hierarchy.

    Calling it again only updates the level.

    Returns:
        logging.Logger: the package logger
    """
    global _configured

    root = logging.getLogger(PACKAGE_LOGGER)
    root.setLevel(level.upper() if isinstance(level, str) else level)

    if _configured:
        return root

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(console)

    ws_handler = WebSocketLogHandler(log_ws_manager)
    ws_handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(ws_handler)

    _configured = True
    return root
