from __future__ import annotations

import logging
import sys
from typing import Any, Optional

from .config import SCRIPTS_DIR, CliSettings
from .errors import UnsupportedPlatformError
from .executor import CommandExecutor
from .usage_data import JsonUsageLogger

logger = logging.getLogger(__name__)

WINDOWS = "win32"
MACOS = "darwin"


class AzureCliInstaller:
    """Detects and installs the Azure CLI on Windows and macOS."""

    def __init__(
        self,
        executor: CommandExecutor,
        usage: JsonUsageLogger,
        settings: Optional[CliSettings] = None,
        platform: str = sys.platform,
    ):
        self.executor = executor
        self.usage = usage
        self.settings = settings or CliSettings()
        self.platform = platform

    @property
    def restart_required(self) -> bool:
        # The Windows installer edits PATH, which only a new shell picks up.
        return self.platform == WINDOWS

    async def is_present(self) -> bool:
        if self.platform == WINDOWS:
            command = f'powershell -ExecutionPolicy Bypass -File "{SCRIPTS_DIR / "getInstalledApps.ps1"}"'
            apps = await self.executor.execute(command)
            installed = self._listing_has_display_name(apps, self.settings.windows_display_name)
        elif self.platform == MACOS:
            packages = await self.executor.execute("brew list", parse_json=False)
            installed = self.settings.mac_package_name in str(packages)
        else:
            self.usage.exception("is_azure_cli_installed", f"Platform not supported: {self.platform}")
            raise UnsupportedPlatformError(self.platform)

        self.usage.custom_event("is_azure_cli_installed", cli_installed=installed)
        return installed

    async def install(self) -> None:
        logger.info("Downloading and installing Azure CLI - this could take a few minutes")
        if self.platform == WINDOWS:
            command = f'powershell -ExecutionPolicy Bypass -File "{SCRIPTS_DIR / "installAzureCli.ps1"}"'
        elif self.platform == MACOS:
            command = f"brew update && brew install {self.settings.mac_package_name}"
        else:
            self.usage.exception("install_azure_cli", f"Platform not supported: {self.platform}")
            raise UnsupportedPlatformError(self.platform)

        await self.executor.execute(command, parse_json=False)
        self.usage.success("install_azure_cli")

    @staticmethod
    def _listing_has_display_name(apps: Any, display_name: str) -> bool:
        # ConvertTo-Json emits a bare object when only one application matches.
        if isinstance(apps, dict):
            apps = [apps]
        if not isinstance(apps, list):
            return False
        return any(isinstance(app, dict) and app.get("DisplayName") == display_name for app in apps)
