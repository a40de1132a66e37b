# src/faultline/core/__init__.py
"""Core infrastructure: HTTP contract, atomic cells, clock and logging."""

from faultline.core.atomic import AtomicReference, Latch
from faultline.core.http import Filter, Handler, Method, Request, Response
from faultline.core.logging import configure_logging, get_logger

__all__ = [
    "AtomicReference",
    "Filter",
    "Handler",
    "Latch",
    "Method",
    "Request",
    "Response",
    "configure_logging",
    "get_logger",
]
