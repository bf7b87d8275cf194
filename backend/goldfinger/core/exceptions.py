import logging
from datetime import date

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    def __init__(self, code: str, message: str, status_code: int = 400):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


class NotFoundError(AppError):
    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            code=f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} with ID {resource_id} was not found.",
            status_code=404,
        )


class ConflictError(AppError):
    def __init__(self, message: str):
        super().__init__(code="CONFLICT", message=message, status_code=409)


class ForbiddenError(AppError):
    def __init__(self, message: str = "You do not have permission to perform this action."):
        super().__init__(code="FORBIDDEN", message=message, status_code=403)


class ValidationError(AppError):
    def __init__(self, message: str):
        super().__init__(code="VALIDATION_ERROR", message=message, status_code=422)


class InvalidRuleConfiguration(AppError):
    """A recurrence pattern is missing or has out-of-range parameters."""

    def __init__(self, message: str):
        super().__init__(code="INVALID_RULE_CONFIGURATION", message=message, status_code=422)


class UnauthorizedTrigger(AppError):
    def __init__(self):
        super().__init__(
            code="UNAUTHORIZED_TRIGGER",
            message="Missing or invalid cron secret.",
            status_code=401,
        )


class PersistenceFailure(AppError):
    """Writing a generated transaction or advancing a rule cursor failed.

    ``generated`` is the number of occurrences committed for the rule before
    the failing one.
    """

    def __init__(self, rule_id, occurrence: date, generated: int = 0):
        super().__init__(
            code="PERSISTENCE_FAILURE",
            message=f"Failed to generate occurrence {occurrence.isoformat()} for rule {rule_id}.",
            status_code=500,
        )
        self.rule_id = rule_id
        self.occurrence = occurrence
        self.generated = generated


def _error_body(code: str, message, details=None) -> dict:
    return {"error": {"code": code, "message": message, "details": details}}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=_error_body(
                "VALIDATION_ERROR",
                "Request validation failed.",
                [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()],
            ),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("HTTP_ERROR", exc.detail),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_body("INTERNAL_ERROR", "An unexpected error occurred."),
        )
