"""structlog setup for the command line.

Library modules only call `structlog.get_logger(__name__)`; the CLI calls
`configure_logging` once. `API_INVENTORY_DEBUG=1` forces debug output.
"""

import logging
import os
import sys

import structlog


def configure_logging(verbose: bool = False) -> None:
    debug = verbose or os.environ.get("API_INVENTORY_DEBUG", "").lower() in ("1", "true", "yes")
    level = logging.DEBUG if debug else logging.WARNING
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
