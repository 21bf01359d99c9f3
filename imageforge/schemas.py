"""Pydantic models shared by the FastAPI endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, StrictStr


class ImageRequest(BaseModel):
    prompt: StrictStr = Field(..., description="Text prompt for image generation")


class ImageResponse(BaseModel):
    image: str = Field(..., description="Generated image as a base64 data URI")


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Human readable failure message")
    code: Optional[str] = Field(default=None, description="Machine readable error kind")


class HealthResponse(BaseModel):
    status: str
    imageModel: str
    configured: bool
