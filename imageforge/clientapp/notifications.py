"""User-facing notification strings and sinks."""

from __future__ import annotations

import logging
from typing import Protocol

EMPTY_PROMPT = "Please enter a prompt"
RATE_LIMITED = "Rate limit exceeded. Please try again later."
PAYMENT_REQUIRED = "Please add credits to your workspace to continue."
GENERATION_FAILED = "Failed to generate image"
UNEXPECTED_ERROR = "An unexpected error occurred"
GENERATION_SUCCEEDED = "Image generated successfully!"
IMAGE_DOWNLOADED = "Image downloaded!"


class Notifier(Protocol):
    """Toast-style sink the controller reports outcomes to."""

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LoggingNotifier:
    """Default notifier writing every notification to a logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("imageforge.notifications")

    def success(self, message: str) -> None:
        self._logger.info(message)

    def error(self, message: str) -> None:
        self._logger.error(message)
