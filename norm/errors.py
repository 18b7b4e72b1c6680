"""
nORM - Application Errors
Every error raised by routes and services carries its HTTP status code
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base application error, serialized to {error, message} by the app factory"""

    status_code = 500
    default_code = 'INTERNAL_ERROR'

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.code = code or self.default_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {
            'error': self.code,
            'message': self.message,
        }
        if self.details is not None:
            body['details'] = self.details
        return body


class ValidationError(AppError):
    """Request payload or parameters are invalid"""
    status_code = 400
    default_code = 'VALIDATION_ERROR'


class AuthenticationError(AppError):
    """Missing or invalid credentials"""
    status_code = 401
    default_code = 'UNAUTHORIZED'


class AuthorizationError(AppError):
    """Authenticated, but not allowed to touch this resource"""
    status_code = 403
    default_code = 'FORBIDDEN'


class NotFoundError(AppError):
    status_code = 404
    default_code = 'NOT_FOUND'

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} not found" if resource_id is None else f"{resource} with id {resource_id} not found"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class RateLimitError(AppError):
    status_code = 429
    default_code = 'RATE_LIMITED'


class ExternalAPIError(AppError):
    """A third-party API (SerpAPI, OpenAI, Meta, LinkedIn, WordPress) failed"""
    status_code = 502
    default_code = 'EXTERNAL_API_ERROR'

    def __init__(self, service: str, message: str, upstream_status: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.upstream_status = upstream_status

    @property
    def retryable(self) -> bool:
        """Rate limits, timeouts and 5xx responses are worth another attempt"""
        if self.upstream_status is None:
            return True
        return self.upstream_status == 429 or self.upstream_status >= 500
