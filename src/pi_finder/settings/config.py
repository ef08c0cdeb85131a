"""Configuration loader for pi_finder services using Pydantic settings."""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

ENV_VAR_NAME = "PI_FINDER_ENV"
DEFAULT_ENV = "local"
PROJECT_ROOT = Path(__file__).resolve().parents[3]
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.default.toml"
LOCAL_CONFIG_FILE = CONFIG_DIR / "settings.local.toml"
SETTINGS_FILE_ENV_VAR = "PI_FINDER_SETTINGS_FILE"


def _resolve_env(explicit_env: str | None = None) -> str:
    """Return the active environment name.

    Args:
        explicit_env: Environment value supplied directly by the caller.

    Returns:
        A stripped environment name, falling back to ``DEFAULT_ENV``.
    """

    env = explicit_env or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV
    return env.strip()


def _env_file_candidates(env: str) -> list[Path]:
    """List candidate ``.env`` files used during settings resolution."""

    return [
        PROJECT_ROOT / ".env",
        PROJECT_ROOT / f".env.{env}",
        PROJECT_ROOT / ".env.local",
    ]


def _resolve_config_path(raw_path: str | None) -> Path | None:
    """Return an absolute config path from user input."""

    if not raw_path:
        return None
    candidate = Path(raw_path).expanduser()
    if not candidate.is_absolute():
        candidate = (PROJECT_ROOT / candidate).resolve()
    return candidate


def _config_file_priority() -> tuple[Path, ...]:
    """Return existing config files in descending precedence order."""

    ordered: list[Path] = []
    env_override = _resolve_config_path(os.getenv(SETTINGS_FILE_ENV_VAR))
    if env_override:
        ordered.append(env_override)
    ordered.append(LOCAL_CONFIG_FILE)
    ordered.append(DEFAULT_CONFIG_FILE)
    return tuple(path for path in ordered if path.exists())


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """Pydantic settings source that loads values from a TOML file."""

    def __init__(self, settings_cls: type[BaseSettings], path: Path) -> None:
        super().__init__(settings_cls)
        self.path = path
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self.path.exists():
            self._data = {}
            return self._data
        try:
            with self.path.open("rb") as handle:
                self._data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:  # pragma: no cover - invalid files surface immediately
            raise ValueError(f"Invalid TOML syntax in {self.path}") from exc
        return self._data

    def __call__(self) -> dict[str, Any]:  # pragma: no cover - trivial wrapper
        return self._load()

    def get_field_value(self, field_name: str, field):  # pragma: no cover - passthrough helper
        data = self._load()
        return data.get(field_name), field_name in data


class RuntimeSettings(BaseSettings):
    """Process-level runtime controls."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "RUNTIME__LOG_LEVEL"),
    )


class APISettings(BaseSettings):
    """Base URL used by the HTTP client when talking to a running service."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    base_url: str = Field(
        default="http://127.0.0.1:8000",
        validation_alias=AliasChoices("API_URL", "API__BASE_URL"),
    )


class StorageSettings(BaseSettings):
    """Investigator database configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    backend: Literal["sqlite", "postgres"] = Field(
        default="sqlite",
        validation_alias=AliasChoices("STORAGE_BACKEND", "STORAGE__BACKEND"),
    )
    sqlite_path: Path = Field(default=PROJECT_ROOT / "data" / "pi_finder.db")
    database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "STORAGE__DATABASE_URL"),
    )


class SearchSettings(BaseSettings):
    """Defaults and bounds for the geographic investigator search."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    default_zip: str = "77030"
    default_radius: float = Field(default=15, gt=0)
    min_radius: float = 5
    max_radius: float = 50
    page_size: int = Field(
        default=6,
        ge=1,
        validation_alias=AliasChoices("SEARCH_PAGE_SIZE", "SEARCH__PAGE_SIZE"),
    )
    min_year: int = 1900
    max_year: int = 2100


class RegistrySettings(BaseSettings):
    """ClinicalTrials.gov v2 registry access."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    base_url: str = Field(
        default="https://clinicaltrials.gov/api/v2/studies",
        validation_alias=AliasChoices("REGISTRY_URL", "REGISTRY__BASE_URL"),
    )
    batch_size: int = Field(default=100, ge=1, le=1000)
    timeout_seconds: float = Field(
        default=30.0,
        validation_alias=AliasChoices("REGISTRY_TIMEOUT", "REGISTRY__TIMEOUT_SECONDS"),
    )
    cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        validation_alias=AliasChoices("TRIAL_META_CACHE_TTL", "REGISTRY__CACHE_TTL_SECONDS"),
    )
    query_length_limit: int = Field(default=1800, ge=1)


class ObservabilitySettings(BaseSettings):
    """Structured logging and metrics configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    structured_logging: bool = Field(
        default=True,
        validation_alias=AliasChoices("STRUCTURED_LOGGING", "OBSERVABILITY__STRUCTURED_LOGGING"),
    )
    statsd_host: str | None = Field(
        default=None,
        validation_alias=AliasChoices("STATSD_HOST", "OBSERVABILITY__STATSD_HOST"),
    )
    statsd_port: int = Field(
        default=8125,
        validation_alias=AliasChoices("STATSD_PORT", "OBSERVABILITY__STATSD_PORT"),
    )
    statsd_prefix: str = Field(
        default="pi_finder",
        validation_alias=AliasChoices("STATSD_PREFIX", "OBSERVABILITY__STATSD_PREFIX"),
    )
    service_name: str = Field(
        default="pi-finder-api",
        validation_alias=AliasChoices("SERVICE_NAME", "OBSERVABILITY__SERVICE_NAME"),
    )


class Settings(BaseSettings):
    """Top-level configuration model with nested sections for each subsystem."""

    env: str = Field(
        default_factory=lambda: _resolve_env(),
        validation_alias=AliasChoices("ENV", "ENVIRONMENT", "RUNTIME__ENV"),
    )
    project_root: Path = Field(default=PROJECT_ROOT)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    api: APISettings = Field(default_factory=APISettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    env_files: tuple[Path, ...] = Field(default_factory=tuple, exclude=True)
    config_files: tuple[Path, ...] = Field(default_factory=tuple, exclude=True)

    model_config = SettingsConfigDict(
        env_prefix="PI_FINDER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Extend settings sources with TOML-based config files."""

        config_sources = [TomlConfigSettingsSource(settings_cls, path) for path in _config_file_priority()]
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            *config_sources,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Normalize relative paths once the model is initialised."""

        if not self.storage.sqlite_path.is_absolute():
            resolved = (self.project_root / self.storage.sqlite_path).resolve()
            object.__setattr__(self, "storage", self.storage.model_copy(update={"sqlite_path": resolved}))
        return self

    @model_validator(mode="after")
    def _apply_environment_overrides(self) -> "Settings":
        """Force environment-specific defaults after basic resolution."""

        if self.env.lower() == "local":
            if not self.storage.database_url:
                object.__setattr__(self, "storage", self.storage.model_copy(update={"backend": "sqlite"}))
            observability_update = {"structured_logging": False}
            object.__setattr__(self, "observability", self.observability.model_copy(update=observability_update))

        url_override = os.getenv("PI_FINDER_DATABASE_URL")
        if url_override and not self.storage.database_url:
            object.__setattr__(self, "storage", self.storage.model_copy(update={"database_url": url_override.strip()}))

        return self

    @property
    def log_level(self) -> str:
        """str: Effective logging level for the running process."""

        return self.runtime.log_level


def _load_settings(env: str | None = None) -> Settings:
    """Load settings with optional environment override.

    Args:
        env: Environment name supplied programmatically.

    Returns:
        Fully parsed :class:`Settings` instance with env files applied.
    """

    resolved_env = _resolve_env(env)
    candidate_files = [path for path in _env_file_candidates(resolved_env) if path.exists()]
    config_files = _config_file_priority()
    return Settings(
        _env_file=[str(path) for path in candidate_files],
        _env_file_encoding="utf-8",
        env=resolved_env,
        env_files=tuple(candidate_files),
        config_files=config_files,
    )


@lru_cache(maxsize=1)
def get_settings(env: str | None = None) -> Settings:
    """Return cached settings for the requested environment."""

    return _load_settings(env)


def reload_settings(env: str | None = None) -> Settings:
    """Clear the cached settings and reload from disk."""

    get_settings.cache_clear()
    return get_settings(env)


__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "PROJECT_ROOT",
    "ENV_VAR_NAME",
]
