"""
Error taxonomy

Services raise these; the handlers below turn them into `{"message": ...}`
JSON bodies with the matching status code.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = "Something went wrong!"


class BookstoreError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookstoreError):
    status_code = 400


class InsufficientStockError(BookstoreError):
    status_code = 400


class InvalidStatusTransitionError(ValidationError):
    pass


class NotFoundError(BookstoreError):
    status_code = 404


class InvalidCredentialsError(BookstoreError):
    status_code = 401


class InvalidTokenError(BookstoreError):
    status_code = 401


class ForbiddenError(BookstoreError):
    status_code = 403


class AccountDeactivatedError(ForbiddenError):
    pass


async def bookstore_error_handler(request: Request, exc: BookstoreError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail},
                        headers=getattr(exc, "headers", None))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"message": message, "errors": jsonable_errors(errors)})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": SERVER_ERROR_MESSAGE})


def jsonable_errors(errors):
    # pydantic may put exception objects into ctx
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]


def register_handlers(app: FastAPI):
    app.add_exception_handler(BookstoreError, bookstore_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
