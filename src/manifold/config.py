# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    database_url: str = "sqlite+aiosqlite:///./manifold.db"
    manifest_path: str = "manifest.yml"
    environment: str = "production"
    log_level: str = "info"
    log_format: Literal["json", "plain"] = "json"
    cors_origins: list[str] = []
    database_pool_size: int = 20

    # Auth (tokens are issued elsewhere; we only verify them)
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"

    # Synthesized API
    default_page_size: int = 20
    max_page_size: int = 100
    max_expand_depth: int = 2
    # "all" reports every violation of a request, "first" only the first one.
    validation_mode: Literal["all", "first"] = "all"
    reload_rate_limit: str = "5/minute"

    model_config = {"env_file": ".env"}

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @model_validator(mode="after")
    def _validate(self) -> Settings:
        if len(self.jwt_secret_key) < 32:
            raise ValueError("jwt_secret_key must be at least 32 characters")
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError("default_page_size must be between 1 and max_page_size")
        if self.max_expand_depth < 0:
            raise ValueError("max_expand_depth cannot be negative")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance. Lazy-loaded to avoid import-time failures."""
    return Settings()


@dataclass(frozen=True)
class ApiOptions:
    """The subset of settings that shapes synthesized operations."""

    default_page_size: int = 20
    max_page_size: int = 100
    max_expand_depth: int = 2
    validation_mode: Literal["all", "first"] = "all"

    @classmethod
    def from_settings(cls, settings: Settings) -> ApiOptions:
        return cls(
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
            max_expand_depth=settings.max_expand_depth,
            validation_mode=settings.validation_mode,
        )
