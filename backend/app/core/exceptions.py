"""
Trip Planner Exception Hierarchy

Structured exceptions raised at the HTTP boundary. Core components (rate limiter,
validators, reset lifecycle) return result values; routes and dependencies turn
those results into one of these exceptions, and a single registered handler
renders them.

Exception Hierarchy:
    TripPlannerError
    ├── AdmissionRejected          429
    ├── ValidationFailed           400
    ├── AuthenticationError
    │   ├── CredentialMissing      401
    │   │   └── CredentialExpired  401
    │   └── InvalidCredentials     401
    ├── AccessDenied               403
    ├── TokenInvalidOrExpired      404
    ├── NotFound                   404
    └── Conflict                   409
"""
import logging
from typing import Optional, Dict, Any, List

from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "API rate limit exceeded. Please try again later."
JWT_NOT_FOUND_MESSAGE = "JWT Token not found"


class TripPlannerError(Exception):
    """
    Base exception for all Trip Planner custom errors.

    Attributes:
        message: Human-readable error description (safe for clients)
        code: Machine-readable error code for programmatic handling
        details: Additional context for logs/audit, never sent to clients
    """

    default_code: str = "TRIP_PLANNER_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def body(self) -> Dict[str, Any]:
        """JSON body returned to the client."""
        return {"error": self.message}

    def headers(self) -> Optional[Dict[str, str]]:
        return None

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content=self.body(),
            headers=self.headers(),
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class AdmissionRejected(TripPlannerError):
    """Request refused by a rate limit policy. Recoverable by waiting."""
    default_code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, retry_after: int = 60, message: str = RATE_LIMIT_MESSAGE, **kwargs):
        self.retry_after = max(1, int(retry_after))
        super().__init__(message, **kwargs)

    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(self.retry_after)}


class ValidationFailed(TripPlannerError):
    """Malformed input; carries every reason so the caller can fix them all at once."""
    default_code = "VALIDATION_FAILED"
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None, **kwargs):
        self.errors = list(errors or [])
        super().__init__(message, **kwargs)

    def body(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {"error": self.message}
        if self.errors:
            content["errors"] = self.errors
        return content


class AuthenticationError(TripPlannerError):
    default_code = "AUTHENTICATION_FAILED"
    status_code = 401

    def body(self) -> Dict[str, Any]:
        return {"message": self.message}


class CredentialMissing(AuthenticationError):
    """No usable credential on the request. Invalid and expired tokens count as missing."""
    default_code = "CREDENTIAL_MISSING"

    def __init__(self, message: str = JWT_NOT_FOUND_MESSAGE, **kwargs):
        super().__init__(message, **kwargs)


class CredentialExpired(CredentialMissing):
    default_code = "CREDENTIAL_EXPIRED"


class InvalidCredentials(AuthenticationError):
    """
    Login refused.

    The message never says whether the username exists.
    """
    default_code = "INVALID_CREDENTIALS"

    def __init__(self, message: str = "Invalid credentials.", **kwargs):
        super().__init__(message, **kwargs)


class AccessDenied(TripPlannerError):
    default_code = "ACCESS_DENIED"
    status_code = 403

    def __init__(self, message: str = "Access denied", **kwargs):
        super().__init__(message, **kwargs)


class TokenInvalidOrExpired(TripPlannerError):
    """Password reset token unknown, already used, or older than its TTL."""
    default_code = "RESET_TOKEN_INVALID"
    status_code = 404

    def __init__(self, message: str = "Invalid or expired token", **kwargs):
        super().__init__(message, **kwargs)


class Conflict(TripPlannerError):
    default_code = "CONFLICT"
    status_code = 409


class NotFound(TripPlannerError):
    default_code = "NOT_FOUND"
    status_code = 404
