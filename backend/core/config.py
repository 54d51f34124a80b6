from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BACKEND_DIR / ".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(
        default=f"sqlite:///{(BACKEND_DIR / 'allocation.db').as_posix()}",
        validation_alias=AliasChoices("database_url", "DATABASE_URL"),
    )

    # Runtime
    environment: str = Field(default="development", validation_alias=AliasChoices("environment", "ENVIRONMENT"))
    frontend_origin: str = Field(
        default="http://localhost:5173",
        validation_alias=AliasChoices("frontend_origin", "FRONTEND_ORIGIN"),
    )

    # Allocation defaults, overridable per run in the request body.
    academic_year: str = Field(default="", validation_alias=AliasChoices("academic_year", "ACADEMIC_YEAR"))
    term: str = Field(default="", validation_alias=AliasChoices("term", "TERM"))
    default_credit_limit: float | None = Field(
        default=None,
        validation_alias=AliasChoices("default_credit_limit", "DEFAULT_CREDIT_LIMIT"),
    )
    abort_invalid_ratio: float = Field(
        default=0.5,
        validation_alias=AliasChoices("abort_invalid_ratio", "ABORT_INVALID_RATIO"),
    )

    @field_validator("frontend_origin")
    @classmethod
    def _normalize_frontend_origin(cls, v: str) -> str:
        # Starlette CORS expects the Origin to match exactly (no trailing slash).
        return v.strip().rstrip("/")

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, v: str) -> str:
        return (v or "development").strip().lower()

    @field_validator("academic_year", "term")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("abort_invalid_ratio")
    @classmethod
    def _check_abort_ratio(cls, v: float) -> float:
        if not (0 < v <= 1):
            raise ValueError("ABORT_INVALID_RATIO must be in (0, 1]")
        return v

    @field_validator("default_credit_limit")
    @classmethod
    def _check_credit_limit(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError("DEFAULT_CREDIT_LIMIT must be >= 0")
        return v


settings = Settings()
