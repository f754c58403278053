"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (SUBJECTPAGE__FETCH__TIMEOUT_MS=5000)
  3. subjectpage.yaml       (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional; all fields have sensible defaults. Per-call
overrides travel in ``FetchOptions`` and fall back to these values.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


def _find_config_file() -> str | None:
    """Return the path of the first subjectpage.yaml found, or None."""
    candidates = [
        Path("subjectpage.yaml"),
        Path(platformdirs.user_config_dir("subjectpage")) / "subjectpage.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class SiteSettings(BaseModel):
    base_url: str = "https://movie.douban.com"
    subject_path: str = "/subject/{id}/"
    submit_path: str = "/c"
    fallback_submit_urls: list[str] = [
        "https://www.douban.com/c",
        "https://movie.douban.com/c",
    ]
    domains: list[str] = ["douban.com", "doubanio.com"]
    accept_language: str = "zh-CN,zh;q=0.9,en;q=0.8"

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class FetchSettings(BaseModel):
    timeout_ms: int = 20_000
    challenge_timeout_ms: int = 15_000
    max_redirects: int = 3
    min_request_interval_ms: int = 1_000
    random_delay_ms: tuple[int, int] = (300, 1_000)


class CacheSettings(BaseModel):
    # Matches the site interface cache time (4 hours).
    ttl_ms: int = 14_400 * 1_000
    max_entries: int = 200


class ChallengeSettings(BaseModel):
    difficulty: int = 4
    max_nonce: int = 2_000_000
    max_rounds: int = 3
    # Run the proof-of-work in a worker thread instead of on the event loop.
    solve_in_thread: bool = True


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: SUBJECTPAGE__CACHE__TTL_MS=60000
        env_prefix="SUBJECTPAGE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    site: SiteSettings = SiteSettings()
    fetch: FetchSettings = FetchSettings()
    cache: CacheSettings = CacheSettings()
    challenge: ChallengeSettings = ChallengeSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
