"""Unit tests covering environment and file overrides for settings."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from pi_finder.settings import get_settings, reload_settings
from pi_finder.settings.config import PROJECT_ROOT


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "PI_FINDER_SETTINGS_FILE",
        "PI_FINDER_DATABASE_URL",
        "PI_FINDER_SEARCH__PAGE_SIZE",
        "PI_FINDER_REGISTRY__BATCH_SIZE",
        "PI_FINDER_STORAGE__BACKEND",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    get_settings.cache_clear()


def test_defaults_match_search_contract() -> None:
    settings = reload_settings(env="local")

    assert settings.search.default_zip == "77030"
    assert settings.search.default_radius == 15
    assert settings.search.page_size == 6
    assert settings.registry.batch_size == 100
    assert settings.registry.cache_ttl_seconds == 300
    assert settings.registry.query_length_limit == 1800
    assert settings.env == "local"


def test_nested_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PI_FINDER_SEARCH__PAGE_SIZE", "10")

    settings = reload_settings(env="local")

    assert settings.search.page_size == 10


def test_local_env_forces_sqlite_and_plain_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PI_FINDER_STORAGE__BACKEND", "postgres")

    settings = reload_settings(env="local")

    assert settings.storage.backend == "sqlite"
    assert settings.observability.structured_logging is False
    assert settings.storage.sqlite_path.is_absolute()
    assert settings.storage.sqlite_path.is_relative_to(PROJECT_ROOT)


def test_database_url_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PI_FINDER_DATABASE_URL", "postgresql+psycopg://pi:pi@localhost/pi_finder")

    settings = reload_settings(env="dev")

    assert settings.storage.database_url == "postgresql+psycopg://pi:pi@localhost/pi_finder"


def test_settings_file_override(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_file = tmp_path / "settings.toml"
    config_file.write_text(
        textwrap.dedent(
            """
            [registry]
            batch_size = 50
            cache_ttl_seconds = 0
            """
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("PI_FINDER_SETTINGS_FILE", str(config_file))

    settings = reload_settings(env="dev")

    assert settings.registry.batch_size == 50
    assert settings.registry.cache_ttl_seconds == 0
    assert str(config_file) in {str(path) for path in settings.config_files}
