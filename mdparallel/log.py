"""Logging setup for the command line."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(verbose: bool = False, debug: bool = False) -> None:
    """Send log records to stderr; ``debug`` also enables provider payload dumps."""

    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)
    # Keep SDK transport chatter out of provider debug output.
    for name in ("deepl", "openai", "httpx", "urllib3"):
        logging.getLogger(name).setLevel(max(level, logging.INFO))
