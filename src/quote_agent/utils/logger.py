"""
Console logging for the quote agent.

Records from the ``quote_agent`` package go to stderr, one line each, with
the module name so a quote can be followed from mapping to formatting.
The API and the conformance script call setup_logging() at startup.
"""
import logging
import sys

PACKAGE_LOGGER = "quote_agent"
HANDLER_NAME = "quote_agent.console"

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Server and client libraries that log every request at INFO
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "watchfiles": logging.WARNING,
    "httpx": logging.WARNING,
    "multipart": logging.WARNING,
}


def _level_of(level) -> int:
    if isinstance(level, int):
        return level
    value = getattr(logging, str(level).upper(), None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level="INFO") -> logging.Logger:
    """
    Attach the console handler to the package logger and set its level.

    Repeated calls only update the level. Unknown level names mean INFO.
    """
    package = logging.getLogger(PACKAGE_LOGGER)
    package.setLevel(_level_of(level))

    if not any(h.get_name() == HANDLER_NAME for h in package.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        package.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
    return package
