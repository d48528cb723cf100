"""
Relay error types.
"""
from typing import Optional


class RelayError(Exception):
    """
    Forwarding to the device failed before a response could be relayed.

    Rendered by the application as a 500 JSON envelope:
    {"error": message, "stacktrace": stacktrace}. stacktrace is omitted when None.
    """

    status_code = 500

    def __init__(self, message: str, stacktrace: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stacktrace = stacktrace

    @classmethod
    def from_exception(cls, message: str, exc: BaseException) -> "RelayError":
        return cls(message, stacktrace=f"{type(exc).__name__}: {exc}")

    def envelope(self) -> dict:
        content = {"error": self.message}
        if self.stacktrace is not None:
            content["stacktrace"] = self.stacktrace
        return content


class StreamUnavailableError(Exception):
    """Upstream answered but has no readable body to pipe."""
