"""Courier API package."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.integrations.fastapi import register_exception_handlers

from courier.api.routes import router
from courier.errors import DispatchError


def register_error_handlers(app: FastAPI) -> None:
    """Map domain errors to HTTP: invalid requests 400, unknown ids 404, dispatch failures 503."""
    register_exception_handlers(app)

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"status": "error", "errors": exc.messages})

    @app.exception_handler(ObjectNotFoundError)
    async def not_found(request: Request, exc: ObjectNotFoundError):
        return JSONResponse(status_code=404, content={"status": "error", "error": str(exc)})

    @app.exception_handler(DispatchError)
    async def dispatch_error(request: Request, exc: DispatchError):
        return JSONResponse(status_code=503, content={"status": "error", "error": str(exc)})


__all__ = ["router", "register_error_handlers"]
