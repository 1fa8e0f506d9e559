"""Domain errors shared by the services and mapped to HTTP responses in backend.py."""

from typing import Optional


class BobError(Exception):
    """Base class for errors surfaced to API callers as ``{error, details}``."""

    status_code = 500
    error = "Internal error"

    def __init__(self, details: str = "", *, error: Optional[str] = None):
        super().__init__(details or self.error)
        self.details = details or self.error
        if error:
            self.error = error

    def to_payload(self) -> dict:
        return {"error": self.error, "details": self.details}


class TransportError(BobError):
    """Network failure or non-2xx status from an upstream provider."""

    error = "Upstream request failed"

    def __init__(
        self,
        details: str = "",
        *,
        provider: Optional[str] = None,
        upstream_status: Optional[int] = None,
        error: Optional[str] = None,
    ):
        super().__init__(details, error=error)
        self.provider = provider
        self.upstream_status = upstream_status


class UpstreamNotFoundError(TransportError):
    status_code = 404
    error = "Not found"


class ConfigurationError(BobError):
    """A required credential or setting is missing on the server."""

    error = "Server not configured"


class MalformedResponseError(BobError):
    """Upstream answered, but the payload could not be parsed or violated its schema."""

    error = "Malformed upstream response"


class ValidationError(BobError):
    status_code = 400
    error = "Invalid request"


class StateError(BobError):
    """OAuth state or stored token missing, expired or already consumed."""

    status_code = 400
    error = "Invalid state or expired"


class RetryExhaustedError(BobError):
    error = "Retries exhausted"

    def __init__(self, attempts: int, last_error: Exception, *, error: Optional[str] = None):
        super().__init__(f"Failed after {attempts} attempts: {last_error}", error=error)
        self.attempts = attempts
        self.last_error = last_error
