"""Error taxonomy shared by the relay and the client controller.

Every failure the relay can report maps to one :class:`ErrorKind`. The relay
serialises the kind into the ``code`` field of its error envelope and the
client matches on it instead of inspecting message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    RATE_LIMITED = "rate_limited"
    PAYMENT_REQUIRED = "payment_required"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    MALFORMED_UPSTREAM_RESPONSE = "malformed_upstream_response"

    @classmethod
    def from_status(cls, status_code: int) -> "ErrorKind":
        """Classify a non-success HTTP status."""
        if status_code == 429:
            return cls.RATE_LIMITED
        if status_code == 402:
            return cls.PAYMENT_REQUIRED
        return cls.UPSTREAM_UNAVAILABLE


class ImageForgeError(Exception):
    """Base class for every expected failure.

    Attributes:
        message: Human readable message, safe to return to callers.
        kind: Classification used for dispatch.
        status_code: HTTP status the relay answers with.
    """

    kind: ErrorKind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code: int = 500

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        if status_code is not None:
            self.status_code = status_code

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"


class PromptValidationError(ImageForgeError):
    """Prompt missing, not a string, or blank."""

    kind = ErrorKind.VALIDATION
    status_code = 400


class ConfigurationError(ImageForgeError):
    """The relay lacks its provider credential."""

    kind = ErrorKind.CONFIGURATION
    status_code = 500


class UpstreamStatusError(ImageForgeError):
    """The provider answered with a non-2xx status."""

    def __init__(self, upstream_status: int) -> None:
        super().__init__(
            f"AI gateway request failed with status {upstream_status}",
            kind=ErrorKind.from_status(upstream_status),
            status_code=upstream_status,
        )
        self.upstream_status = upstream_status


class UpstreamUnavailableError(ImageForgeError):
    """The provider could not be reached or timed out."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 500


class MalformedUpstreamResponseError(ImageForgeError):
    """The provider answered 2xx but without an image."""

    kind = ErrorKind.MALFORMED_UPSTREAM_RESPONSE
    status_code = 500


class RelayCallError(ImageForgeError):
    """Client-side failure of a call to the relay."""
