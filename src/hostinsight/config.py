"""Runtime configuration, read from ``HOSTINSIGHT_*`` environment variables or ``.env``."""

from __future__ import annotations

import os
import platform
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_disk_mount() -> str:
    """Return the mount point of the system drive."""
    if platform.system() == "Windows":
        return os.environ.get("SystemDrive", "C:") + "\\"
    return "/"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="HOSTINSIGHT_", env_file=".env", extra="ignore")

    # AI endpoint
    api_key: str = Field(default="")
    model: str = Field(default="gemini-1.5-flash")
    api_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    connect_timeout: float = Field(default=10.0, gt=0)
    request_deadline: float = Field(default=60.0, gt=0)

    # sampling
    poll_interval: float = Field(default=2.0, gt=0)
    process_limit: int = Field(default=10, ge=1)
    disk_mount: str = Field(default_factory=default_disk_mount)

    # logging / output
    log_level: str = Field(default="DEBUG")
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".hostinsight")

    @property
    def log_path(self) -> Path:
        return self.data_dir / "hostinsight.log"

    @property
    def report_path(self) -> Path:
        return self.data_dir / "insight.html"


settings = Settings()
