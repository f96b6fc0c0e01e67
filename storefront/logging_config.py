"""JSON logging with per-request correlation ids.

Log records emitted while a request is being handled carry the id stored in
``REQUEST_ID_CTX`` by :func:`request_id_middleware`. Outside a request the
placeholder ``-`` is used so formatters can always reference
``%(request_id)s``.
"""

import contextvars
import logging
import uuid

from fastapi import Request
from pythonjsonlogger import jsonlogger

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
REQUEST_ID_HEADER = "X-Request-ID"

logger = logging.getLogger("storefront")


class RequestIdFilter(logging.Filter):
    """Attach a ``request_id`` attribute to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = REQUEST_ID_CTX.get()
        return True


def configure_logging(level: str = "INFO") -> logging.Logger:
    if not logger.handlers:
        h = logging.StreamHandler()
        h.setFormatter(jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"
        ))
        h.addFilter(RequestIdFilter())
        logger.addHandler(h)
    logger.setLevel(level)
    return logger


async def request_id_middleware(request: Request, call_next):
    rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    token = REQUEST_ID_CTX.set(rid)
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.debug("request handled", extra={"path": request.url.path, "method": request.method})
        REQUEST_ID_CTX.reset(token)
    response.headers[REQUEST_ID_HEADER] = rid
    return response
