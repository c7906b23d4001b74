"""
Custom Exception Hierarchy

Every error raised by a service carries the HTTP status the API answers with,
so routes can let them propagate to the handlers registered in create_app().
"""
from typing import Optional, Dict, Any


class OncoTrackError(Exception):
    """Base exception for all OncoTrack domain errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            "details": self.details
        }


class InputValidationError(OncoTrackError):
    """Missing or malformed request fields. Raised before any side effect."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        extra = {"field": field} if field else {}
        super().__init__(message=message, code="VALIDATION_ERROR", details={**extra, **(details or {})})
        self.field = field


class AuthenticationError(OncoTrackError):
    status_code = 401

    def __init__(self, message: str = "Authentication required."):
        super().__init__(message=message, code="AUTHENTICATION_ERROR")


class PermissionDeniedError(OncoTrackError):
    """Caller is authenticated but may not act on the target."""

    status_code = 403

    def __init__(self, message: str = "You do not have access to this resource.", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="PERMISSION_DENIED", details=details)


class IdentityMismatchError(PermissionDeniedError):
    """Authenticated caller tried to act for a different user id."""

    def __init__(self, message: str = "User id does not match the authenticated user."):
        super().__init__(message=message)
        self.code = "IDENTITY_MISMATCH"


class ResourceNotFoundError(OncoTrackError):
    status_code = 404

    def __init__(self, message: str, resource: str = "unknown"):
        super().__init__(message=message, code="NOT_FOUND", details={"resource": resource})
        self.resource = resource


class ConnectionNotFoundError(ResourceNotFoundError):
    """No active connection with the partner for this user."""

    def __init__(self, provider: str):
        super().__init__(message=f"No active connection with provider '{provider}'.", resource="external_connection")
        self.code = "NOT_CONNECTED"
        self.details["provider"] = provider


class PendingAuthorizationNotFoundError(OncoTrackError):
    """Partner has no pending authorization; the user must authorize there first."""

    status_code = 400

    def __init__(self, provider: str, upstream_status: Optional[int] = None):
        super().__init__(
            message="Pending connection not found at the partner. Please authorize access there first.",
            code="PENDING_AUTHORIZATION_NOT_FOUND",
            details={"provider": provider, "upstream_status": upstream_status}
        )


class MalformedProviderResponseError(OncoTrackError):
    status_code = 400

    def __init__(self, provider: str, reason: str):
        super().__init__(
            message=f"Malformed response from provider '{provider}': {reason}",
            code="MALFORMED_PROVIDER_RESPONSE",
            details={"provider": provider}
        )


class UpstreamServiceError(OncoTrackError):
    """Partner call failed (non-2xx or unreachable). Local state is left unchanged."""

    status_code = 502

    def __init__(self, message: str, provider: str, upstream_status: Optional[int] = None):
        super().__init__(
            message=message,
            code="UPSTREAM_ERROR",
            details={"provider": provider, "upstream_status": upstream_status}
        )
        self.upstream_status = upstream_status
