import uuid
import logging
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from regulatory_outbox.core.errors import PersistenceError

log = logging.getLogger("regulatory_outbox.errors")


# Generate a clean request id for every response
def _rid():
    """Generates a unique request ID for tracing."""
    return uuid.uuid4().hex


def _error_body(code: str, message, **extra):
    error = {"code": code, "message": message}
    error.update(extra)
    return {"success": False, "error": error, "request_id": _rid()}


# ----------- Exception Handlers (called by FastAPI) -----------

def http_exception_handler(request: Request, exc: HTTPException):
    """Handles exceptions raised by HTTPException (e.g., 404, 400)."""
    return JSONResponse(status_code=exc.status_code, content=_error_body("http_error", exc.detail))


def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handles Pydantic validation errors (422 Unprocessable Entity)."""
    body = _error_body("validation_error", "Invalid input data", details=jsonable_errors(exc))
    return JSONResponse(status_code=422, content=body)


def persistence_exception_handler(request: Request, exc: PersistenceError):
    """Outbox storage is unavailable (503 Service Unavailable)."""
    log.error(f"Outbox storage failure on path {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content=_error_body("persistence_error", "Outbox storage unavailable"))


def generic_exception_handler(request: Request, exc: Exception):
    """Handles all unhandled exceptions (500 Internal Server Error)."""
    log.error(f"Unhandled exception on path: {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content=_error_body("server_error", "Internal Server Error"))


def jsonable_errors(exc: RequestValidationError):
    # ctx may hold exception instances that JSONResponse cannot render
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


# ----------- Registration Function -----------

def setup_exception_handlers(app: FastAPI):
    """Registers all custom exception handlers with the FastAPI application."""
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PersistenceError, persistence_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    return app
