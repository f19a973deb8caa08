"""Error taxonomy shared by the relay, its guards and the proxy client.

Every error carries the HTTP status it maps to and a machine-readable
code. The FastAPI app turns them into ``{"error": code, "message": ...}``
responses; nothing here is retried by the server.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for all errors surfaced to relay clients."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


class Unauthorized(RelayError):
    """Missing or bad device credential or operator token."""

    status_code = 401
    code = "unauthorized"


class Forbidden(RelayError):
    """Valid operator token, insufficient role."""

    status_code = 403
    code = "forbidden"


class NotFound(RelayError):
    status_code = 404
    code = "not_found"


class UpstreamUnavailable(RelayError):
    """The device's own HTTP server failed or timed out (proxy mode)."""

    status_code = 502
    code = "upstream_unavailable"

    def __init__(self, message: str, upstream: str = "") -> None:
        super().__init__(message)
        self.upstream = upstream


class ValidationError(RelayError):
    status_code = 422
    code = "validation_error"
