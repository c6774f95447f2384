from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class RelevanceWeights(BaseModel):
    """Relevance scores assigned per match kind.

    These are product decisions; change them deliberately.
    """

    postal_code: float = 1.0
    exact: float = 1.0
    prefix: float = 0.9
    contains: float = 0.7
    admin: float = 0.5
    nearby: float = 0.8
    full_text: float = 0.6


class Settings(BaseSettings):
    """App configuration (env-friendly).

    Tip: create a .env file and override settings there.
    Nested weights use a double underscore, e.g. RELEVANCE__PREFIX=0.85.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_nested_delimiter="__"
    )

    app_name: str = "Postal Search API"
    version: str = "0.1.0"

    database_url: str = "sqlite:///./postal_codes.db"

    default_country: str = "DE"
    default_max_results: int = 20
    max_results_cap: int = 100
    min_query_length: int = 2
    default_radius_km: float = 25.0

    cache_ttl_s: float = 300.0
    cache_max_size: int = 1024

    # The FTS5 index is optional; failures fall back to place-name matching.
    full_text_enabled: bool = False

    relevance: RelevanceWeights = RelevanceWeights()

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
