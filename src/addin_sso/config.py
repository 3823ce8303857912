from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

SCRIPTS_DIR = Path(__file__).resolve().parent / "scripts"


def get_user_config_dir() -> Path:
    """Per-user configuration directory for the current platform."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "addin-sso"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "addin-sso"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "addin-sso"
    return Path.home() / ".config" / "addin-sso"


class ExecutorSettings(BaseModel):
    max_buffer_bytes: int = Field(
        default=1024 * 102400,
        description="Upper bound on captured stdout; large listings such as 'az ad sp list --all' run to megabytes",
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("max_buffer_bytes")
    @classmethod
    def ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("max_buffer_bytes must be positive")
        return value


class CliSettings(BaseModel):
    windows_display_name: str = "Microsoft Azure CLI"
    mac_package_name: str = "azure-cli"

    model_config = ConfigDict(extra="forbid")


class ReadinessSettings(BaseModel):
    max_attempts: int = Field(default=51, description="One initial check plus retries")
    initial_delay: float = Field(default=0.5, description="Seconds before the first retry")
    max_delay: float = Field(default=5.0, description="Backoff ceiling in seconds")

    model_config = ConfigDict(extra="forbid")

    @field_validator("max_attempts")
    @classmethod
    def ensure_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_attempts must be at least 1")
        return value

    @field_validator("initial_delay", "max_delay")
    @classmethod
    def ensure_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("delays cannot be negative")
        return value


class RegistrationSettings(BaseModel):
    admin_role_names: List[str] = Field(
        default_factory=lambda: ["Company Administrator", "Global Administrator"],
        description="Directory role display names that identify a tenant admin",
    )
    sharepoint_service_app_id: str = "57fb890c-0dab-4253-a5e0-7188c88b2bb4"
    templates_dir: Path = Field(
        default=SCRIPTS_DIR,
        description="Directory holding the az command templates",
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("admin_role_names")
    @classmethod
    def ensure_roles(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("At least one admin role name must be provided")
        return value


class UsageDataSettings(BaseModel):
    enabled: bool = True
    logger_name: str = "addin_sso.usage"

    model_config = ConfigDict(extra="forbid")


class CredentialStoreSettings(BaseModel):
    path: Optional[Path] = Field(
        default=None,
        description="Env file receiving issued secrets. Defaults to the per-user config directory.",
    )

    model_config = ConfigDict(extra="forbid")

    def resolve_path(self) -> Path:
        return self.path or get_user_config_dir() / "credentials.env"


class SsoConfig(BaseModel):
    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
    cli: CliSettings = Field(default_factory=CliSettings)
    readiness: ReadinessSettings = Field(default_factory=ReadinessSettings)
    registration: RegistrationSettings = Field(default_factory=RegistrationSettings)
    usage_data: UsageDataSettings = Field(default_factory=UsageDataSettings)
    credential_store: CredentialStoreSettings = Field(default_factory=CredentialStoreSettings)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def load(cls, path: Union[str, Path, None] = None) -> "SsoConfig":
        if path is None:
            return cls()

        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}

        return cls(**raw)
