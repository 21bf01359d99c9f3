"""Async HTTP client used by the controller to call the relay."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..config import Settings, get_settings
from ..errors import ErrorKind, RelayCallError
from ..utils import is_data_uri

logger = logging.getLogger(__name__)


class RelayClient:
    """Posts ``{"prompt": ...}`` to the relay and returns the image data URI.

    Exactly one request per :meth:`generate` call, never retried. Every
    failure is raised as :class:`RelayCallError` with a classified kind.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.url = self.settings.relay_url
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self.settings.relay_timeout)

    async def __aenter__(self) -> "RelayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def generate(self, prompt: str) -> str:
        try:
            response = await self._http.post(self.url, json={"prompt": prompt})
        except httpx.TransportError as exc:
            logger.warning("Relay at %s unreachable: %s", self.url, exc)
            raise RelayCallError(
                "Relay is unreachable",
                kind=ErrorKind.UPSTREAM_UNAVAILABLE,
            ) from exc

        if not response.is_success:
            raise _error_from_response(response)

        body = _json_or_none(response)
        image = body.get("image") if isinstance(body, dict) else None
        if not is_data_uri(image):
            logger.warning("Relay answered %s without an image", response.status_code)
            raise RelayCallError(
                "No image was generated",
                kind=ErrorKind.MALFORMED_UPSTREAM_RESPONSE,
                status_code=response.status_code,
            )
        return image


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_from_response(response: httpx.Response) -> RelayCallError:
    body = _json_or_none(response)
    message = f"Relay request failed with status {response.status_code}"
    code = None
    if isinstance(body, dict):
        if isinstance(body.get("error"), str):
            message = body["error"]
        code = body.get("code")

    try:
        kind = ErrorKind(code)
    except ValueError:
        kind = ErrorKind.from_status(response.status_code)

    logger.warning("Relay answered %s (%s): %s", response.status_code, kind.value, message)
    return RelayCallError(message, kind=kind, status_code=response.status_code)
