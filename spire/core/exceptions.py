"""Custom exception classes for Spire."""

from typing import Any, Dict, Optional

from fastapi import status


class SpireError(Exception):
    """Base exception carrying an HTTP status and optional details."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "An error occurred"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    @property
    def error(self) -> Dict[str, Any]:
        """Failure envelope for this error."""
        body: Dict[str, Any] = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details.get("details", self.details)
        return body


class BadRequest(SpireError):
    """Malformed input or a violated business rule."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class Unauthorized(SpireError):
    """Missing identity or failed permission check."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class NotFound(SpireError):
    """Raised when a requested resource is not found."""
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class InternalServerError(SpireError):
    """Unexpected failure, including unreachable node agents."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"


class ActionsError(Exception):
    """Raised by service actions; routes translate it to BadRequest."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class NodeAgentError(SpireError):
    """A Glide node agent call failed or answered with success=false."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Node agent request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, details)
        if status_code is not None:
            self.status_code = status_code
