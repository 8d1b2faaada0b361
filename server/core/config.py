"""Service-wide configuration.

Settings are read from the environment (and a local `.env` file) with
pydantic-settings. `PORT` and `MONGO_URL` are the two options the server
needs; the rest have defaults suited to a local checkout.
"""

import re
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Repository root: server/core/config.py -> ../../
BASE_DIR = Path(__file__).resolve().parent.parent.parent

DEFAULT_PORT = 6001
DEFAULT_BODY_LIMIT = "30mb"
ASSETS_ROUTE = "/assets"

_UNITS = {"b": 1, "kb": 1 << 10, "mb": 1 << 20, "gb": 1 << 30, "tb": 1 << 40}
_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb|tb)?\s*$", re.IGNORECASE)


def parse_size(value) -> int:
    """Convert a size such as `30mb` or `1024` into a number of bytes."""
    if isinstance(value, int):
        return value
    match = _SIZE_RE.match(str(value))
    if not match:
        raise ValueError(f"invalid size: {value!r}")
    number, unit = match.groups()
    return int(float(number) * _UNITS[(unit or "b").lower()])


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    port: int = Field(DEFAULT_PORT, gt=0, le=65535)
    host: str = "0.0.0.0"
    mongo_url: Optional[str] = None

    app_root: Path = BASE_DIR
    assets_dir: Path = Path("public/assets")
    body_limit: int = parse_size(DEFAULT_BODY_LIMIT)
    corp_policy: Literal["same-origin", "same-site", "cross-origin"] = "same-origin"

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("body_limit", mode="before")
    @classmethod
    def _parse_body_limit(cls, value):
        return parse_size(value)

    @field_validator("mongo_url")
    @classmethod
    def _blank_url_is_missing(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def assets_path(self) -> Path:
        """Absolute directory served under `/assets` and used for uploads."""
        if self.assets_dir.is_absolute():
            return self.assets_dir
        return self.app_root / self.assets_dir


@lru_cache
def get_settings() -> Settings:
    return Settings()
