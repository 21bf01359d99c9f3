from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration shared by the relay and the client controller."""

    #----------------------------------------------------------
    # AI gateway settings (relay side)
    #----------------------------------------------------------
    ai_gateway_api_key: SecretStr = Field(
        default="",
        description="API key attached to every upstream image-generation request.",
    )

    ai_gateway_base_url: str = Field(
        default="https://ai.gateway.lovable.dev/v1",
        description="Base URL of the OpenAI-compatible chat-completion gateway.",
    )

    image_model_id: str = Field(
        default="google/gemini-2.5-flash-image-preview",
        description="Model identifier sent with every image-generation request.",
    )

    upstream_timeout: float = Field(
        default=120.0,
        gt=0.0,
        description="Seconds to wait for the upstream provider before giving up.",
    )

    #----------------------------------------------------------
    # Client settings
    #----------------------------------------------------------
    relay_url: str = Field(
        default="http://localhost:8000/generate-image",
        description="URL of the relay endpoint called by the client controller.",
    )

    relay_timeout: float = Field(
        default=180.0,
        gt=0.0,
        description="Seconds the client waits for the relay to answer.",
    )

    download_dir: Path = Field(
        default=Path("."),
        description="Directory exported images are written to.",
    )

    model_config = SettingsConfigDict(
        env_prefix="IMAGEFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def has_credentials(self) -> bool:
        return bool(self.ai_gateway_api_key.get_secret_value().strip())


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
