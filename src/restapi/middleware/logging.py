"""
=============================================================================
LOGGING MIDDLEWARE
=============================================================================

One access-log line per routed request, with timing and a short request id.

=============================================================================
LOG FORMATS
=============================================================================

    TEXT (default, Apache-like):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - - [17/Oct/2026:10:55:36 +0000] "POST /api/users          │
    │ HTTP/1.1" 201 58 0.41ms [a1b2c3d4]                                   │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"request_id":"a1b2c3d4","method":"POST","target":"/api/users",      │
    │  "version":"HTTP/1.1","client_ip":"127.0.0.1","status_code":201,     │
    │  "content_length":58,"duration_ms":0.41,"timestamp":"..."}           │
    └─────────────────────────────────────────────────────────────────────┘

Lines go to the "restapi.access" logger at INFO, so the default WARNING
level keeps them off stderr. Run with --log-level INFO to see them.

Requests that never reach the router (bad framing, failed handshake) are
not access-logged; the session logs those at DEBUG.

=============================================================================
REQUEST ID HEADER
=============================================================================

include_request_id=True adds X-Request-ID to the response. It is off by
default: the API answers with a fixed header set and clients may compare
responses byte for byte.

=============================================================================
"""

import time
import json
import uuid
import logging
from dataclasses import dataclass, asdict

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


# Namespaced so operators can route access logs separately:
#   logging.getLogger("restapi.access").addHandler(file_handler)
logger = logging.getLogger("restapi.access")


@dataclass
class RequestLog:
    """
    Structured access-log entry.

    request_id:     Short random id, also sent as X-Request-ID if enabled
    method:         Request method
    target:         Raw request-target
    version:        HTTP version of the request
    client_ip:      Peer address
    status_code:    Response status
    content_length: Response body size in bytes
    duration_ms:    Time spent in the router
    timestamp:      When the request was handled
    """

    request_id: str
    method: str
    target: str
    version: str
    client_ip: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.target} {self.version}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms [{self.request_id}]'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware. Should be first in the pipeline so its
    timing covers everything after it.

        pipeline.add(LoggingMiddleware(log_format="json"))
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = False,
        log_level: int = logging.INFO,
    ):
        """
        Args:
            log_format: "text" (Apache-like) or "json".
            include_request_id: Add X-Request-ID to the response.
            log_level: Level for access-log lines.
        """
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.target} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms) [{request_id}]"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if logger.isEnabledFor(self.log_level):
            entry = RequestLog(
                request_id=request_id,
                method=request.method,
                target=request.target,
                version=request.version,
                client_ip=request.client_address[0],
                status_code=int(response.status),
                content_length=len(response.body),
                duration_ms=duration_ms,
                timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
            )
            if self.log_format == "json":
                logger.log(self.log_level, json.dumps(entry.to_dict()))
            else:
                logger.log(self.log_level, entry.to_text())

        if self.include_request_id:
            response.set_header("X-Request-ID", request_id)

        return response
