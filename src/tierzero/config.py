from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Configuration sourced from environment variables."""

    store_backend: Literal["disk", "redis", "memory"] = "disk"
    store_path: str = ".tierzero"
    redis_url: str = "redis://localhost:6379"

    cache_capacity: int = Field(10_000, ge=1)
    similarity_threshold: float = Field(0.8, ge=0.0, le=1.0)
    max_text_length: int = Field(512, ge=1)
    long_text_words: int = Field(200, ge=1)

    retry_ceiling: int = Field(5, ge=0)
    send_timeout: float = Field(15.0, gt=0.0)
    backoff_seconds: float = Field(30.0, gt=0.0)

    api_base_url: str = "http://localhost:5000"
    health_path: str = "/api/health"
    probe_interval: float = 0.0

    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "TIERZERO_",
        "case_sensitive": False,
    }


@lru_cache(1)
def get_settings() -> Settings:
    return Settings()
