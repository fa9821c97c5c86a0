"""Error taxonomy for the Total Connect Comfort client."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Closed classification of every failure the client can report."""

    AUTHENTICATION_FAILED = "authentication_failed"
    NOT_AUTHENTICATED = "not_authenticated"
    SESSION_EXPIRED = "session_expired"
    RATE_LIMITED = "rate_limited"
    API_REJECTED = "api_rejected"
    UNEXPECTED_RESPONSE = "unexpected_response"
    COMMUNICATION_FAILURE = "communication_failure"
    MALFORMED_RESPONSE = "malformed_response"


class TotalComfortError(Exception):
    """Base class for classified Total Connect Comfort failures."""

    kind: ErrorKind = ErrorKind.COMMUNICATION_FAILURE

    @property
    def retryable(self) -> bool:
        """Return True when the client may retry the request locally."""

        return self.kind in (
            ErrorKind.COMMUNICATION_FAILURE,
            ErrorKind.MALFORMED_RESPONSE,
        )


class AuthenticationFailed(TotalComfortError):
    """The portal refused the configured credentials."""

    kind = ErrorKind.AUTHENTICATION_FAILED


class NotAuthenticated(TotalComfortError):
    """A request was attempted without an authenticated session."""

    kind = ErrorKind.NOT_AUTHENTICATED


class SessionExpired(TotalComfortError):
    """The portal no longer accepts the session cookies."""

    kind = ErrorKind.SESSION_EXPIRED


class RateLimited(TotalComfortError):
    """The portal asked the client to slow down."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, *, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ApiRejected(TotalComfortError):
    """The portal accepted the request but rejected the operation."""

    kind = ErrorKind.API_REJECTED


class UnexpectedResponse(TotalComfortError):
    """The portal answered with an unexpected HTTP status."""

    kind = ErrorKind.UNEXPECTED_RESPONSE

    def __init__(self, status: int, message: str | None = None) -> None:
        super().__init__(message or f"Unexpected HTTP status {status}")
        self.status = status


class CommunicationFailure(TotalComfortError):
    """Transport-level failure (timeout, connection refused, DNS)."""

    kind = ErrorKind.COMMUNICATION_FAILURE


class MalformedResponse(TotalComfortError):
    """The response body could not be interpreted."""

    kind = ErrorKind.MALFORMED_RESPONSE


__all__ = [
    "ApiRejected",
    "AuthenticationFailed",
    "CommunicationFailure",
    "ErrorKind",
    "MalformedResponse",
    "NotAuthenticated",
    "RateLimited",
    "SessionExpired",
    "TotalComfortError",
    "UnexpectedResponse",
]
