from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class ApiError(HTTPException):
    """HTTPException that also carries an optional ``data`` payload for the envelope."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, data: Any = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=type(self).status_code, detail=message, headers=headers)
        self.data = data


class ValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientStock(ValidationError):
    pass


class AuthenticationError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str, data: Any = None):
        super().__init__(message, data=data, headers={"WWW-Authenticate": "Bearer"})


class PermissionDenied(ApiError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(ApiError):
    status_code = status.HTTP_409_CONFLICT


class TooManyRequests(ApiError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class OrderProcessingFailed(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Order processing failed. Please try again."):
        super().__init__(message)
