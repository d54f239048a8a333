"""Error taxonomy for authentication, authorization and account workflows.

Every error carries the HTTP status it maps to and a public ``reason``
that is safe to return to the client. Anything more specific stays in
the logs.
"""
from typing import Optional


class AccessError(Exception):
    """Base class for errors surfaced at the request boundary."""

    status_code = 500
    default_reason = "Internal server error"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class Unauthenticated(AccessError):
    """Missing, unverifiable or revoked credential.

    ``cause`` records which path produced the failure (``missing``,
    ``invalid`` or ``revoked``). It is for logs and tests only; the
    response body is identical for every cause.
    """

    status_code = 401
    default_reason = "Authentication required"

    def __init__(self, cause: str = "missing", reason: Optional[str] = None):
        super().__init__(reason)
        self.cause = cause


class InvalidCredential(Exception):
    """Raised by the token codec for any verification failure."""

    def __init__(self):
        super().__init__("Invalid or expired token")


class Forbidden(AccessError):
    """Authenticated but not permitted. Carries a human-readable reason."""

    status_code = 403
    default_reason = "Insufficient permissions"


class ConfigurationError(AccessError):
    """The server cannot sign credentials (signing secret missing)."""

    status_code = 500
    default_reason = "Server misconfiguration"


class InvalidLogin(AccessError):
    status_code = 401
    default_reason = "Invalid email or password"


class NotFound(AccessError):
    status_code = 404
    default_reason = "Not found"


class Conflict(AccessError):
    """Request is well-formed but conflicts with existing data."""

    status_code = 400
    default_reason = "Request conflicts with existing data"
