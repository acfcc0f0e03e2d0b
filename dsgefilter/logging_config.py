"""
Loggers of the dsgefilter package.

Every module logs under ``dsgefilter.<component>``. The package logger has a
NullHandler and level WARNING, so nothing is printed unless the application
configures logging or uses :func:`filter_log`.

Components:

- ``filters``: run dimensions and regime hand-offs (DEBUG), numerical
  failures (ERROR), empty data (WARNING)
- ``filters.periods``: one record per filtered period (DEBUG), numpy path only
- ``dlyap``: fallback to the diffuse initial state (INFO)
- ``settings``: settings read from YAML (DEBUG)
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

PACKAGE = "dsgefilter"
COMPONENTS = ("filters", "filters.periods", "dlyap", "settings")
DEFAULT_FORMAT = "%(name)s %(levelname)s: %(message)s"

_pkg_logger = logging.getLogger(PACKAGE)
_pkg_logger.addHandler(logging.NullHandler())
_pkg_logger.setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Logger of one component, ``dsgefilter.<name>``."""
    return logging.getLogger(f"{PACKAGE}.{name}")


@contextmanager
def filter_log(level: int = logging.INFO,
               stream=None,
               components: Optional[Sequence[str]] = None,
               format_str: str = DEFAULT_FORMAT) -> Iterator[logging.Handler]:
    """
    Send the filter's log records to ``stream`` for the duration of a block.

    Args:
        level: lowest level shown
        stream: file-like object, stderr by default
        components: restrict output to these components (see
            ``COMPONENTS``); the whole package when omitted
        format_str: record format

    Yields:
        The attached handler.

    Example:
        >>> with filter_log(logging.DEBUG, components=["filters.periods"]):
        ...     kalman_filter(y, model)
    """
    if components:
        unknown = set(components) - set(COMPONENTS)
        if unknown:
            raise ValueError(f"Unknown logging components {sorted(unknown)}. Valid: {list(COMPONENTS)}")
        loggers = [get_logger(c) for c in components]
    else:
        loggers = [_pkg_logger]

    handler = logging.StreamHandler(sys.stderr if stream is None else stream)
    handler.setFormatter(logging.Formatter(format_str))
    handler.setLevel(level)

    saved = [(lg, lg.level, lg.propagate) for lg in loggers]
    for lg in loggers:
        lg.addHandler(handler)
        lg.setLevel(level)
        lg.propagate = False
    try:
        yield handler
    finally:
        for lg, old_level, old_propagate in saved:
            lg.removeHandler(handler)
            lg.setLevel(old_level)
            lg.propagate = old_propagate
        handler.close()


__all__ = ["get_logger", "filter_log", "COMPONENTS", "DEFAULT_FORMAT"]
