"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=401, details=details)


class InvalidCredentialsError(AuthenticationError):
    """Invalid username or password"""
    def __init__(self):
        super().__init__("Invalid username or password")


class AccountLockedError(AuthenticationError):
    """Account is locked due to failed login attempts"""
    def __init__(self, locked_until: str):
        super().__init__(
            f"Account is locked until {locked_until}",
            details={"locked_until": locked_until}
        )


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


# Validation Errors
class ValidationError(BaseAPIException):
    """Bad input; never retried"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


# Business Logic Errors
class BusinessLogicError(BaseAPIException):
    """Business logic error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


class DuplicateUsernameError(BusinessLogicError):
    """Username already exists"""
    def __init__(self, username: str):
        super().__init__(f"Username '{username}' already exists")


class AlreadyJoinedError(BusinessLogicError):
    """User is already a participant of the contest"""
    def __init__(self):
        super().__init__("Already joined this contest")


class ContestFullError(BusinessLogicError):
    """Contest reached max_participants"""
    def __init__(self):
        super().__init__("Contest is full")


class ContestClosedError(BusinessLogicError):
    """Contest window has ended"""
    def __init__(self):
        super().__init__("Contest has ended")


class RequeueNotAllowedError(BusinessLogicError):
    """Only failed evaluations can be re-queued"""
    def __init__(self, state: str):
        super().__init__(
            "Only submissions that ended in InternalError can be re-queued",
            details={"state": state},
        )


# Submission lifecycle
class InvalidTransitionError(BaseAPIException):
    """
    Requested state change is not reachable from the current state.

    Raised by the submission store when a terminal transition loses the race
    or targets an already-terminal submission.
    """
    def __init__(self, submission_id: int, current: Optional[str], requested: str):
        self.submission_id = submission_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Submission {submission_id} cannot move from {current} to {requested}",
            status_code=409,
            details={"current": current, "requested": requested},
        )


# Judge Errors
class JudgeError(BaseAPIException):
    """Judge returned something we cannot interpret; not retried"""
    def __init__(self, message: str = "Judge protocol error"):
        super().__init__(message, status_code=502)


class JudgeUnavailableError(JudgeError):
    """Judge is unreachable, slow or overloaded; retried with backoff"""
    def __init__(self, message: str = "Judge service unavailable"):
        super().__init__(message)
        self.status_code = 503


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", retry_after: int = 0):
        super().__init__(message, status_code=429, details={"retry_after": retry_after})
