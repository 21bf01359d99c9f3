from __future__ import annotations

from abc import ABC, abstractmethod


class ImageGenerationClient(ABC):
    """Abstract interface for an upstream image generation client.

    Implementations issue exactly one upstream request per call and
    translate provider failures into :mod:`imageforge.errors` exceptions.
    """

    @property
    @abstractmethod
    def model_id(self) -> str:  # pragma: no cover - interface
        """Return the model identifier sent upstream."""

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """Generate an image from a prompt and return it as a data URI."""
