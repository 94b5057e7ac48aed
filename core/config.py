import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Model Asset Service"
    LOG_LEVEL: str = "INFO"

    # Ingest limits
    MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024

    # Headless rendering
    RENDER_SIGNAL_TIMEOUT: float = 60.0  # seconds to wait for window.renderingFinished
    RENDER_SESSION_TIMEOUT: float = 300.0  # ceiling for the whole render session
    RENDER_VIEWPORT: int = 256  # must match RENDER_SIZE in render.html

    TRACING_ENABLED: bool = False

    model_config = SettingsConfigDict()


class LocalSettings(Settings):
    ENV: str = "dev"
    LOCAL_STORAGE_PATH: Path = Field(default=Path("local_storage"))
    STORAGE_BACKEND: Literal["filesystem", "memory"] = "filesystem"

    # Base URL for serving local files
    API_BASE_URL: str = "http://localhost:8000"
    RENDER_PAGE_URL: Optional[str] = None

    @model_validator(mode="after")
    def default_render_page(self):
        if not self.RENDER_PAGE_URL:
            self.RENDER_PAGE_URL = f"{self.API_BASE_URL}/render.html"
        return self


class ProductionSettings(Settings):
    ENV: str = "production"
    REDIS_URL: str = Field(..., validation_alias="REDIS_URL")
    S3_BUCKET_NAME: str = Field(..., validation_alias="S3_BUCKET_NAME")
    S3_ENDPOINT_URL: Optional[str] = Field(default=None, validation_alias="S3_ENDPOINT_URL")
    AWS_ACCESS_KEY: str = Field(..., validation_alias="AWS_ACCESS_KEY")
    AWS_SECRET_KEY: str = Field(..., validation_alias="AWS_SECRET_KEY")
    AWS_REGION: str = Field(..., validation_alias="AWS_REGION")
    S3_PUBLIC_URL: str = Field(..., validation_alias="S3_PUBLIC_URL")
    RENDER_PAGE_URL: str = Field(..., validation_alias="RENDER_PAGE_URL")


# Factory to choose the right config
def get_settings():
    env = os.getenv("ENV", "local")
    print(f"Loading settings for environment: {env}")
    if env == "production":
        return ProductionSettings()  # type: ignore
    return LocalSettings()


settings = get_settings()
