"""
=============================================================================
MIDDLEWARE
=============================================================================

Layers wrapped around router.handle:

    LoggingMiddleware ──► router.handle ──► LoggingMiddleware
      start timer           route             access-log line

Add your own by subclassing Middleware and calling pipeline.add().

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "LoggingMiddleware",
    "RequestLog",
]
