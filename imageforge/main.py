"""FastAPI entry point exposing the ImageForge relay."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import ImageForgeError, PromptValidationError
from .schemas import ErrorResponse, HealthResponse, ImageRequest, ImageResponse
from .service import RelayService, get_relay_service

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"

# Browser callers live on another origin and must be able to read every
# response, including error envelopes.
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def _error_response(status_code: int, message: str, code: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=message, code=code).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body, headers=CORS_HEADERS)


app = FastAPI(title="ImageForge Relay", version="1.0.0")


@app.middleware("http")
async def cors_headers(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(ImageForgeError)
async def handle_imageforge_error(request: Request, exc: ImageForgeError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message, exc.kind.value)


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, UNEXPECTED_ERROR_MESSAGE)


@app.get("/health", response_model=HealthResponse, summary="Health Check Endpoint")
async def healthcheck(service: RelayService = Depends(get_relay_service)):
    return HealthResponse(
        status="ok",
        imageModel=service.settings.image_model_id,
        configured=service.configured,
    )


async def _read_image_request(request: Request) -> ImageRequest:
    try:
        payload: Any = await request.json()
    except ValueError as exc:
        raise PromptValidationError("Request body must be valid JSON") from exc

    try:
        return ImageRequest.model_validate(payload)
    except ValidationError as exc:
        raise PromptValidationError("Prompt is required and must be a string") from exc


@app.post(
    "/generate-image",
    response_model=ImageResponse,
    responses={
        400: {"model": ErrorResponse},
        402: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Generate an image from a text prompt",
)
async def generate_image(
    request: Request,
    service: RelayService = Depends(get_relay_service),
):
    payload = await _read_image_request(request)

    try:
        image = await run_in_threadpool(service.relay, payload.prompt)
    except ImageForgeError as exc:
        logger.warning("Image relay failed: %s", exc)
        raise
    except Exception:
        logger.exception("Image relay failed unexpectedly")
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, UNEXPECTED_ERROR_MESSAGE)

    return ImageResponse(image=image)


__all__ = ["app", "CORS_HEADERS"]


if __name__ == "__main__":  # pragma: no cover - convenience entry point
    import uvicorn

    uvicorn.run("imageforge.main:app", host="0.0.0.0", port=8000, reload=True)
