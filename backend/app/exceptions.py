"""
Service errors and the FastAPI handlers that render them.

Every error leaves the API as {error_code, message, details}.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.middleware.request_id import get_request_id

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base class; subclasses pin the error code and HTTP status."""

    error_code = "APP_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AppException):
    error_code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(AppException):
    error_code = "AUTHENTICATION_ERROR"
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFoundError(AppException):
    error_code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found" + (f": {identifier}" if identifier else "")
        super().__init__(message, {"resource": resource, "identifier": identifier})


class BusinessLogicError(AppException):
    """The request is well formed but the current state does not allow it."""
    error_code = "BUSINESS_LOGIC_ERROR"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ExternalServiceError(AppException):
    """The upstream failed on a path the user is waiting on."""
    error_code = "EXTERNAL_SERVICE_ERROR"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str, service_name: Optional[str] = None):
        super().__init__(message, {"service": service_name} if service_name else None)


class StationLockedError(BusinessLogicError):
    def __init__(self, station_id: int):
        super().__init__(f"Station {station_id} is locked", {"station_id": station_id})


class RequiredQuestionUnanswered(ValidationError):
    """Forward navigation past a required question with a blank answer."""

    def __init__(self, question_id: str):
        super().__init__("This question is required", {"question_id": question_id})


class UnknownQuestionError(ValidationError):
    def __init__(self, question_id: str):
        super().__init__(f"Unknown question: {question_id}", {"question_id": question_id})


class SectionNotAccessible(BusinessLogicError):
    """Jump ahead to a section that is neither complete nor visited."""

    def __init__(self, section: int, current_section: int):
        super().__init__(
            f"Section {section} is not accessible yet",
            {"section": section, "current_section": current_section},
        )


class QuestionnaireSubmitted(BusinessLogicError):
    def __init__(self):
        super().__init__("Questionnaire has already been submitted")


class SchemaLoadError(ExternalServiceError):
    """Questionnaire structure unavailable or malformed; nothing partial is rendered."""

    def __init__(self, message: str = "Failed to load questionnaire structure. Please try again."):
        super().__init__(message, service_name="questionnaire-structure")


class SubmitError(ExternalServiceError):
    def __init__(self, message: str = "Failed to save questionnaire. Please try again."):
        super().__init__(message, service_name="structured-idea-input")


def _error_response(status_code: int, error_code: str, message: Any, details: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error_code": error_code, "message": message, "details": details},
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(
        f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}",
        extra={"request_id": get_request_id(request), "status": exc.status_code},
    )
    return _error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning(
        f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}",
        extra={"request_id": get_request_id(request), "status": exc.status_code},
    )
    return _error_response(exc.status_code, "HTTP_ERROR", exc.detail, {})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unexpected error on {request.method} {request.url.path}: {exc}",
        exc_info=True,
        extra={"request_id": get_request_id(request)},
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "An unexpected error occurred", {}
    )
