"""
Error taxonomy for the relay.

Handler-level errors subclass RelayError and are turned into JSON bodies
of the form {"error": ..., "details": ...} by the exception handlers
registered in main.create_app. Stream errors never reach the caller.
"""

from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base class for errors surfaced to HTTP callers."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(RelayError):
    """Missing or malformed request input."""

    status_code = 400


class ModelNotFound(RelayError):
    """Requested model is not in the upstream model list."""

    status_code = 404


class UpstreamUnavailable(RelayError):
    """Upstream refused the connection."""

    status_code = 503

    def __init__(self, message: str = "Ollama is not running. Please start Ollama first.",
                 details: Any = "Run: ollama serve"):
        super().__init__(message, details)


class UpstreamError(RelayError):
    """Upstream answered with a non-2xx status; status and body pass through."""

    def __init__(self, status: int, body: Any):
        super().__init__("Ollama API error", details=body, status_code=status)
        self.status = status
        self.body = body


class UpstreamTimeout(RelayError):
    """No upstream response within the configured bound."""

    status_code = 504

    def __init__(self, timeout: float):
        super().__init__(
            "Ollama request timed out",
            details=f"No response within {timeout:g} seconds",
        )
        self.timeout = timeout


class StreamFrameError(Exception):
    """One malformed frame inside an active stream. Recovered locally."""

    def __init__(self, raw: bytes, reason: str):
        super().__init__(f"Malformed stream frame: {reason}")
        self.raw = raw
        self.reason = reason


class StreamTransportError(Exception):
    """Upstream connection died after streaming began."""
