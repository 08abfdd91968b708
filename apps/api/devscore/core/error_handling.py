"""
Error handling for the HTTP surface
Standardized error responses, logging, and user-facing messages
"""
import logging
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from devscore.core.config import settings


class ErrorCategory(str, Enum):
    """Categories of errors for better classification"""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    BUSINESS_LOGIC = "business_logic"
    AUTHORIZATION = "authorization"
    EXTERNAL_SERVICE = "external_service"
    SYSTEM = "system"


class ErrorSeverity(str, Enum):
    """Error severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorResponse(BaseModel):
    """Standardized error response model"""
    error: str = Field(..., description="Error identifier")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    request_id: str = Field(..., description="Unique request identifier")
    timestamp: str = Field(..., description="ISO timestamp of the error")
    category: ErrorCategory = Field(..., description="Error category")
    severity: ErrorSeverity = Field(..., description="Error severity")
    user_message: Optional[str] = Field(None, description="User-friendly message")
    stack_trace: Optional[str] = Field(None, description="Stack trace for debugging")


class ValidationErrorDetail(BaseModel):
    """Detailed validation error information"""
    field: str
    message: str
    code: str


class ApplicationError(Exception):
    """Base application error with rich context"""

    def __init__(
        self,
        error_code: str,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
    ):
        self.error_code = error_code
        self.message = message
        self.category = category
        self.severity = severity
        self.status_code = status_code
        self.details = details or {}
        self.user_message = user_message
        self.request_id = str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc)

        super().__init__(message)


class NotFoundError(ApplicationError):
    """Resource not found error"""

    def __init__(self, resource_type: str, resource_id: Optional[Union[str, int]] = None):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message += f" (ID: {resource_id})"

        super().__init__(
            error_code="resource_not_found",
            message=message,
            category=ErrorCategory.NOT_FOUND,
            severity=ErrorSeverity.LOW,
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
            user_message="The requested resource does not exist.",
        )


class BadRequestError(ApplicationError):
    """Request is well-formed but cannot be applied in the current state"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code="bad_request",
            message=message,
            category=ErrorCategory.BUSINESS_LOGIC,
            severity=ErrorSeverity.LOW,
            status_code=400,
            details=details,
            user_message=message,
        )


class ConflictError(ApplicationError):
    """Business rule violation caused by existing state"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code="conflict",
            message=message,
            category=ErrorCategory.BUSINESS_LOGIC,
            severity=ErrorSeverity.MEDIUM,
            status_code=409,
            details=details,
            user_message=message,
        )


class ForbiddenError(ApplicationError):
    """Operation blocked by a business rule such as the project lock window"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code="forbidden",
            message=message,
            category=ErrorCategory.AUTHORIZATION,
            severity=ErrorSeverity.MEDIUM,
            status_code=403,
            details=details,
            user_message=message,
        )


class ErrorHandler:
    """Centralized error handling system"""

    def __init__(self):
        self.logger = logging.getLogger("devscore.errors")
        self.development_mode = settings.environment == "development"

    async def handle_application_error(self, request: Request, error: ApplicationError) -> JSONResponse:
        self._log_error(request, error)

        response = ErrorResponse(
            error=error.error_code,
            message=error.message,
            details=error.details or None,
            request_id=error.request_id,
            timestamp=error.timestamp.isoformat(),
            category=error.category,
            severity=error.severity,
            user_message=error.user_message,
        )
        if self.development_mode and error.status_code >= 500:
            response.stack_trace = traceback.format_exc()

        return JSONResponse(
            status_code=error.status_code,
            content=response.model_dump(mode="json", exclude_none=True),
        )

    async def handle_http_exception(self, request: Request, exc: HTTPException) -> JSONResponse:
        error = ApplicationError(
            error_code=f"http_{exc.status_code}",
            message=str(exc.detail),
            category=ErrorCategory.NOT_FOUND if exc.status_code == 404 else ErrorCategory.VALIDATION,
            severity=ErrorSeverity.CRITICAL if exc.status_code >= 500 else ErrorSeverity.LOW,
            status_code=exc.status_code,
        )
        return await self.handle_application_error(request, error)

    async def handle_validation_exception(self, request: Request, exc: RequestValidationError) -> JSONResponse:
        field_errors: List[ValidationErrorDetail] = [
            ValidationErrorDetail(
                field=".".join(str(loc) for loc in err.get("loc", ())),
                message=err.get("msg", ""),
                code=err.get("type", ""),
            )
            for err in exc.errors()
        ]
        error = ApplicationError(
            error_code="validation_failed",
            message="Validation failed",
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            status_code=422,
            details={"field_errors": [fe.model_dump() for fe in field_errors]},
            user_message="Please check the submitted fields.",
        )
        return await self.handle_application_error(request, error)

    async def handle_generic_exception(self, request: Request, exc: Exception) -> JSONResponse:
        error = ApplicationError(
            error_code="internal_server_error",
            message="An unexpected error occurred",
            category=ErrorCategory.SYSTEM,
            severity=ErrorSeverity.CRITICAL,
            status_code=500,
            details={"exception_type": type(exc).__name__},
        )
        self.logger.error(
            f"Unhandled exception: {exc}",
            extra={
                "request_id": error.request_id,
                "path": request.url.path,
                "method": request.method,
            },
            exc_info=exc,
        )
        return await self.handle_application_error(request, error)

    def _log_error(self, request: Request, error: ApplicationError) -> None:
        log_data = {
            "request_id": error.request_id,
            "error_code": error.error_code,
            "category": error.category.value,
            "status_code": error.status_code,
            "path": request.url.path,
            "method": request.method,
        }
        if error.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(error.message, extra=log_data)
        elif error.severity == ErrorSeverity.HIGH:
            self.logger.error(error.message, extra=log_data)
        elif error.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(error.message, extra=log_data)
        else:
            self.logger.info(error.message, extra=log_data)


error_handler = ErrorHandler()


# FastAPI exception handlers
async def application_error_handler(request: Request, exc: ApplicationError):
    return await error_handler.handle_application_error(request, exc)


async def http_exception_handler(request: Request, exc: HTTPException):
    return await error_handler.handle_http_exception(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return await error_handler.handle_validation_exception(request, exc)


async def generic_exception_handler(request: Request, exc: Exception):
    return await error_handler.handle_generic_exception(request, exc)
