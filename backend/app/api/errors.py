"""JSON error responses for domain exceptions."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.services.milestone_ordering import MilestoneError
from app.services.milestone_store import StorageUnavailableError

logger = logging.getLogger(__name__)


async def milestone_error_handler(request: Request, exc: MilestoneError) -> JSONResponse:
    logger.info(
        "Rejected %s %s: %s",
        request.method,
        request.url.path,
        exc.code,
        extra={"milestone_id": exc.milestone_id},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


async def storage_error_handler(request: Request, exc: StorageUnavailableError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers={"Retry-After": "1"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MilestoneError, milestone_error_handler)
    app.add_exception_handler(StorageUnavailableError, storage_error_handler)
