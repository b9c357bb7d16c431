from fastapi import HTTPException, status
from typing import Any, Dict, Optional

class NotFoundException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers
        self.status_code = status.HTTP_404_NOT_FOUND
        self.detail = detail or "Not found"

class ForbiddenException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers
        self.status_code = status.HTTP_403_FORBIDDEN
        self.detail = detail or "Forbidden"

class BadRequestException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers
        self.status_code = status.HTTP_400_BAD_REQUEST
        self.detail = detail or "Bad request"

class UnauthorizedException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers or {"WWW-Authenticate": "Bearer"}
        self.status_code = status.HTTP_401_UNAUTHORIZED
        self.detail = detail or "Unauthorized"

class ConflictException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers
        self.status_code = status.HTTP_409_CONFLICT
        self.detail = detail or "Conflict"

class PayloadTooLargeException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers
        self.status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
        self.detail = detail or "Payload too large"

class InternalServerException(HTTPException):
    def __init__(self,detail: Any = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers
        self.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        self.detail = detail or "Internal server error"

def integrity_error_message(e: Exception) -> str:
    """First line of a database integrity error, with its DETAIL part when present."""
    error_msg = str(e.orig) if hasattr(e, 'orig') else str(e)
    if 'DETAIL:' in error_msg:
        main_error = error_msg.split('\n')[0]
        detail_part = error_msg.split('DETAIL:')[1].split('\n')[0].strip()
        return f"{main_error}. {detail_part}"
    return error_msg.split('\n')[0]
