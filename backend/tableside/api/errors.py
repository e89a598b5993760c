"""
Maps queue engine errors to HTTP responses, in one place.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tableside.core.errors import ConcurrencyConflict, QueueError
from tableside.core.logging import get_logger

logger = get_logger(__name__)


async def queue_error_handler(request: Request, exc: QueueError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log("queue_error", error=exc.kind.value, detail=exc.detail, status_code=exc.status_code, **exc.context)

    headers = {"Retry-After": "1"} if isinstance(exc, ConcurrencyConflict) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QueueError, queue_error_handler)
