# gnosis/core/responses.py

"""
Uniform JSON envelope for every endpoint
{"success": bool, "message": str, "data": {...}}
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gnosis.core.database import serialize_mongo

logger = logging.getLogger(__name__)


def success_response(message: str, data: Optional[Any] = None, status_code: int = 200) -> JSONResponse:
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = serialize_mongo(data)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def error_response(message: str, status_code: int = 500, **extra) -> JSONResponse:
    body = {"success": False, "message": message}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(serialize_mongo(body)))


# ==================== EXCEPTION HANDLERS ====================

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, dict):
        extra = dict(detail)
        message = extra.pop("message", "Request failed")
        return error_response(message, exc.status_code, **extra)
    return error_response(str(detail), exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        location = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({
            "field": ".".join(location),
            "msg": str(err.get("msg", "")).replace("Value error, ", ""),
        })
    return error_response("Validation failed", 400, errors=errors)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}")
    return error_response("Internal server error", 500)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
