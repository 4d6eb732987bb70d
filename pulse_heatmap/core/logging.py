"""
logging.py — Process-wide logging setup.

Library modules only ever call logging.getLogger(__name__); whatever
embeds the client (a script, a test harness, a desktop shell) calls
configure_logging() once at startup.
"""

import logging

from pulse_heatmap.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(debug: bool | None = None) -> None:
    """Apply the standard log format; DEBUG level when settings.debug is set."""
    if debug is None:
        debug = settings.debug
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO — too chatty while panning the map.
    logging.getLogger("httpx").setLevel(logging.WARNING)
