"""
Request ID Middleware

Tags every request with a short ID for log correlation and records the
guest session header (X-Anonymous-Session) so log lines can be tied back
to an anonymous visitor.
"""

import uuid
import logging
import contextvars
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ANONYMOUS_SESSION_HEADER = "X-Anonymous-Session"

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar('request_id', default='')
session_id_var: contextvars.ContextVar[str] = contextvars.ContextVar('session_id', default='')

logger = logging.getLogger(__name__)


def get_request_id() -> str:
    """Current request ID (empty outside a request)."""
    return request_id_var.get()


def get_session_id() -> str:
    """Anonymous session ID sent with the current request, if any."""
    return session_id_var.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Assigns a request ID (or honours an incoming X-Request-ID), stores it and
    the anonymous session header in context variables, and echoes the ID on
    the response.

    Usage:
        app.add_middleware(RequestIDMiddleware)
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())[:8]
        session_id = request.headers.get(ANONYMOUS_SESSION_HEADER, '')

        request_id_token = request_id_var.set(request_id)
        session_id_token = session_id_var.set(session_id)

        try:
            response = await call_next(request)
            response.headers['X-Request-ID'] = request_id
            return response
        finally:
            request_id_var.reset(request_id_token)
            session_id_var.reset(session_id_token)


class RequestIDLogFilter(logging.Filter):
    """Adds request_id and session_id attributes to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or '-'
        record.session_id = get_session_id() or '-'
        return True


def setup_request_id_logging(log_format: Optional[str] = None, level: Optional[str] = None):
    """
    Configure the root logger so every record carries the request ID.

    Args:
        log_format: Format string; may use %(request_id)s and %(session_id)s.
        level: Root log level name (e.g. "INFO"). Left unchanged if None.
    """
    if log_format is None:
        log_format = '%(asctime)s [%(request_id)s] %(name)s %(levelname)s: %(message)s'

    root_logger = logging.getLogger()
    if level:
        root_logger.setLevel(level.upper())

    log_filter = RequestIDLogFilter()
    if not root_logger.handlers:
        root_logger.addHandler(logging.StreamHandler())

    for handler in root_logger.handlers:
        handler.addFilter(log_filter)
        handler.setFormatter(logging.Formatter(log_format))
