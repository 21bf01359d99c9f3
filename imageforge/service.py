"""Relay logic between the HTTP endpoint and the upstream image provider."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Callable, Optional

from .aiservices.imagegenerationclient import ImageGenerationClient
from .aiservices.openaiimagegenerationclient import OpenAIImageGenerationClient
from .config import Settings, get_settings
from .errors import ConfigurationError
from .utils import validate_prompt

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Settings], ImageGenerationClient]


class RelayService:
    """Stateless relay: validate, attach credentials, call upstream, normalize."""

    def __init__(
        self,
        settings: Settings | None = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client_factory = client_factory or OpenAIImageGenerationClient
        self._image_client: Optional[ImageGenerationClient] = None

    @property
    def configured(self) -> bool:
        return self.settings.has_credentials

    def relay(self, prompt: object) -> str:
        """Forward one prompt upstream and return the generated image data URI.

        Raises an :class:`~imageforge.errors.ImageForgeError` subclass for every
        failure path; nothing is retried.
        """
        prompt = validate_prompt(prompt)

        # Checked on every invocation so a missing secret never reaches upstream.
        if not self.configured:
            logger.error("IMAGEFORGE_AI_GATEWAY_API_KEY is not set; refusing to relay")
            raise ConfigurationError("Image generation is not configured")

        client = self._get_client()
        logger.info("Relaying prompt (%d chars) to model %s", len(prompt), client.model_id)
        image = client.generate(prompt)
        logger.info("Upstream returned an image (%d chars)", len(image))
        return image

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _get_client(self) -> ImageGenerationClient:
        if self._image_client is None:
            self._image_client = self._client_factory(self.settings)
        return self._image_client


@lru_cache
def get_relay_service() -> RelayService:
    return RelayService(get_settings())
