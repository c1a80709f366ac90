"""Application configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


@dataclass(frozen=True)
class Settings:
    """Simple settings container with environment variable overrides."""

    es_host: str = _get_env("ES_HOST", "http://localhost:9200")
    es_index: str = _get_env("ES_INDEX", "products")
    redis_host: str = _get_env("REDIS_HOST", "localhost")
    redis_port: int = int(_get_env("REDIS_PORT", "6379"))
    redis_db: int = int(_get_env("REDIS_DB", "0"))
    cache_ttl_seconds: int = int(_get_env("CACHE_TTL_SECONDS", "3600"))
    cache_timeout_seconds: float = float(_get_env("CACHE_TIMEOUT_SECONDS", "0.5"))
    store_timeout_seconds: float = float(_get_env("STORE_TIMEOUT_SECONDS", "10"))
    batch_size: int = int(_get_env("BATCH_SIZE", "1000"))
    data_path: str = _get_env("DATA_PATH", "data/products.csv")
    load_on_startup: bool = _get_env("LOAD_ON_STARTUP", "false").lower() in {"1", "true", "yes"}
    max_page_size: int = int(_get_env("MAX_PAGE_SIZE", "100"))
    max_suggestions: int = int(_get_env("MAX_SUGGESTIONS", "50"))
    max_upload_bytes: int = int(_get_env("MAX_UPLOAD_BYTES", str(100 * 1024 * 1024)))
    log_level: str = _get_env("LOG_LEVEL", "INFO")


settings = Settings()
