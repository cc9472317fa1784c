import logging
import os

LOG_FORMAT = "%(levelname)s - %(name)s - %(message)s"

# Libraries that log every request at INFO; only shown in debug runs.
CHATTY_LOGGERS = ("httpx", "httpcore")

def debug_requested(debug: bool = False) -> bool:
    """True when --debug was given or CARDMIRROR_DEBUG=true is set."""
    return debug or os.environ.get("CARDMIRROR_DEBUG", "false").lower() == "true"

def setup_logging(debug: bool = False) -> int:
    """Configure logging with a debug level toggle; returns the chosen level."""
    level = logging.DEBUG if debug_requested(debug) else logging.WARNING
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()]
    )
    logging.getLogger("cardmirror").setLevel(level)
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(level)
    return level

def get_logger(name: str) -> logging.Logger:
    """Return a logger instance with the given name."""
    return logging.getLogger(name)
