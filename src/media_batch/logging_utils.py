"""Logging setup for scripts and command-line front ends."""

import logging

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def level_for_verbosity(verbosity: int) -> int:
    """0 -> WARNING, 1 -> INFO, 2+ -> DEBUG."""
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def setup_logging(verbosity: int = 0) -> None:
    """
    Configure root logging for an entry point.

    Library modules only create loggers; call this from the program that uses
    them. Calling it again just updates the level.
    """
    level = level_for_verbosity(verbosity)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbosity >= 2 else logging.WARNING)
