"""Configuration management using pydantic-settings."""

import tomllib
from pathlib import Path
from typing import Self
from urllib.parse import urlparse

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "http://44.222.223.134"
DEFAULT_DATA_DIR = "~/.local/share/mailscan"
DEFAULT_TIMEOUT = 30.0
DEFAULT_UPLOAD_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 120.0
DEFAULT_PAGE_SIZE = 20
CONFIG_PATH = Path("~/.config/mailscan/config.toml").expanduser()


class ApiConfig(BaseSettings):
    """Remote scanning service configuration."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    upload_timeout: float = DEFAULT_UPLOAD_TIMEOUT
    page_size: int = DEFAULT_PAGE_SIZE

    @field_validator("base_url")
    @classmethod
    def check_base_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid base_url: {v}")
        return v.rstrip("/")

    @field_validator("timeout", "upload_timeout")
    @classmethod
    def check_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be positive")
        return v


class PollConfig(BaseSettings):
    interval_seconds: float = DEFAULT_POLL_INTERVAL

    @field_validator("interval_seconds")
    @classmethod
    def check_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Poll interval must be positive")
        return v


class StorageConfig(BaseSettings):
    data_dir: Path = Path(DEFAULT_DATA_DIR).expanduser()

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MAILSCAN_", env_nested_delimiter="__")

    api: ApiConfig = ApiConfig()
    poll: PollConfig = PollConfig()
    storage: StorageConfig = StorageConfig()

    @model_validator(mode="after")
    def ensure_dirs(self) -> Self:
        self.storage.data_dir.mkdir(parents=True, exist_ok=True)
        return self


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from TOML file, falling back to defaults."""
    path = config_path or CONFIG_PATH

    if path.exists():
        with open(path, "rb") as f:
            data = tomllib.load(f)

        api = ApiConfig(**data.get("api", {}))
        poll = PollConfig(**data.get("poll", {}))
        storage = StorageConfig(**data.get("storage", {}))
        return Settings(api=api, poll=poll, storage=storage)

    return Settings()
