# aiservices/openaiimagegenerationclient.py
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
import openai
from openai import OpenAI

from ..config import Settings, get_settings
from ..errors import (
    ConfigurationError,
    MalformedUpstreamResponseError,
    UpstreamStatusError,
    UpstreamUnavailableError,
)
from ..utils import is_data_uri
from .imagegenerationclient import ImageGenerationClient

logger = logging.getLogger(__name__)

IMAGE_MODALITIES = ["image", "text"]


class OpenAIImageGenerationClient(ImageGenerationClient):
    """
    Image generation over an OpenAI-compatible chat-completions endpoint.

    Works with gateways that return generated images alongside the assistant
    message, e.g. ``choices[0].message.images[0].image_url.url``:
      - Lovable AI gateway (default base_url)
      - OpenRouter and other gateways exposing Gemini image models
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings or get_settings()

        api_key = self.settings.ai_gateway_api_key.get_secret_value()
        if not api_key.strip():
            raise ConfigurationError("AI gateway API key is not configured")

        # One request per generation, never retried by the SDK.
        self._client = OpenAI(
            api_key=api_key,
            base_url=self.settings.ai_gateway_base_url,
            timeout=self.settings.upstream_timeout,
            max_retries=0,
            http_client=http_client,
        )
        self._model = self.settings.image_model_id

    @property
    def model_id(self) -> str:
        return self._model

    def generate(self, prompt: str) -> str:
        params = {
            "model": self._model,
            "messages": [
                {"role": "user", "content": prompt},
            ],
            # Not a typed SDK parameter for image output on every release.
            "extra_body": {"modalities": IMAGE_MODALITIES},
        }

        completion = self._chat_create(params)
        return extract_image_url(completion)

    # --- Internals ------------------------------------------------------------

    def _chat_create(self, params: dict) -> Any:
        try:
            return self._client.chat.completions.create(**params)
        except openai.APIStatusError as exc:
            logger.warning(
                "AI gateway returned status %s: %s", exc.status_code, _short_body(exc.response)
            )
            raise UpstreamStatusError(exc.status_code) from exc
        except openai.APIConnectionError as exc:
            logger.warning("AI gateway unreachable: %s", exc)
            raise UpstreamUnavailableError("AI gateway is unreachable") from exc
        except openai.APIResponseValidationError as exc:
            logger.warning("AI gateway returned an unparseable body: %s", exc)
            raise MalformedUpstreamResponseError("No image was generated") from exc
        except openai.APIError as exc:
            logger.warning("AI gateway request failed: %s", exc)
            raise UpstreamUnavailableError("AI gateway request failed") from exc


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _first(items: Any) -> Any:
    if isinstance(items, (list, tuple)) and items:
        return items[0]
    return None


def extract_image_url(completion: Any) -> str:
    """Return ``choices[0].message.images[0].image_url.url`` from a completion.

    Works on SDK models (the ``images`` field is an untyped extra) as well as
    on plain dicts. Raises :class:`MalformedUpstreamResponseError` when any
    step of the path is missing or the URL is not a base64 data URI.
    """
    message = _field(_first(_field(completion, "choices")), "message")
    image = _first(_field(message, "images"))
    url = _field(_field(image, "image_url"), "url")

    if not isinstance(url, str) or not url:
        logger.warning("AI gateway response did not contain an image")
        raise MalformedUpstreamResponseError("No image was generated")
    if not is_data_uri(url):
        logger.warning("AI gateway returned a non data URI image: %s", url[:80])
        raise MalformedUpstreamResponseError("No image was generated")
    return url


def _short_body(response: Optional[httpx.Response], limit: int = 200) -> str:
    if response is None:
        return ""
    try:
        return response.text[:limit]
    except httpx.ResponseNotRead:
        return ""
