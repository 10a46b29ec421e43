"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One line per request on the "gopkgredir.access" logger.

    Text (Apache-like):
        ::1 - - [18/Oct/2026:10:30:45 +0000] "GET /mypkg?go-get=1" https 200 312 0.41ms

    JSON:
        {"request_id": "a1b2c3d4", "method": "GET", "path": "/mypkg", ...}

The access logger can be routed separately from the application loggers:

    logging.getLogger("gopkgredir.access").addHandler(file_handler)

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, asdict

from ..config import ACCESS_LOG_FORMATS
from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("gopkgredir.access")


@dataclass
class RequestLog:
    """Structured access-log entry."""

    request_id: str
    method: str
    path: str
    query: str
    scheme: str
    host: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        """Format as an Apache-style line."""
        target = f"{self.path}?{self.query}" if self.query else self.path
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {target}" {self.scheme} {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Should be first in the pipeline so that timing covers everything and
    requests short-circuited by later middleware are still logged.

        pipeline.add(LoggingMiddleware())          # text
        pipeline.add(LoggingMiddleware("json"))    # one JSON object per line
    """

    def __init__(self, log_format: str = "text"):
        if log_format not in ACCESS_LOG_FORMATS:
            raise ValueError(f"unknown log format: {log_format!r}")
        self.log_format = log_format

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.raw_path,
            query=request.query_string,
            scheme="https" if request.tls else "http",
            host=request.host,
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.info(json.dumps(log_entry.to_dict()))
        else:
            logger.info(log_entry.to_text())

        return response
