import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from schoollink.config import settings

REQUEST_ID_HEADER = "X-Request-ID"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"

# Request id of the request being served, "-" outside of a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Stamp every record with the id of the request that produced it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def setup_logging():
    """Configure application logging."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_FILE:
        os.makedirs(Path(settings.LOG_FILE).parent, exist_ok=True)
        handlers.append(logging.FileHandler(settings.LOG_FILE))

    request_filter = RequestIdFilter()
    for handler in handlers:
        handler.addFilter(request_filter)

    logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=handlers, force=True)

    # Quiet the chatty libraries
    for name in ("uvicorn", "sqlalchemy", "httpx", "reportlab"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("schoollink")
    logger.setLevel(log_level)
    return logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log each request and tag it with a request id.

    A caller-supplied X-Request-ID is reused so ids can be followed across
    services; otherwise a new one is generated. The id is echoed back on the
    response and attached to every log line written while the request runs.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = logging.getLogger("schoollink.request")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        request.state.request_id = request_id
        start_time = time.time()

        client = request.client.host if request.client else "unknown"
        self.logger.info(f"{request.method} {request.url.path} started [client: {client}]")

        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error(f"{request.method} {request.url.path} failed: {e}", exc_info=True)
            raise
        else:
            duration = time.time() - start_time
            self.logger.info(
                f"{request.method} {request.url.path} completed "
                f"[status: {response.status_code}] [duration: {duration:.3f}s]"
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_id_var.reset(token)


def add_logging_middleware(app: FastAPI):
    app.add_middleware(RequestLoggingMiddleware)
