from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import Optional, Union

from .cli_installer import AzureCliInstaller
from .config import SsoConfig
from .errors import RegistrationError
from .executor import CommandExecutor
from .project_files import ApplicationDataWriter, DotenvCredentialStore, read_manifest_display_name
from .readiness import ReadinessPoller
from .registrar import ApplicationRecord, ApplicationRegistrar, CredentialStore
from .session import SessionManager
from .usage_data import JsonUsageLogger

logger = logging.getLogger(__name__)


class SsoConfigurator:
    """Wires the collaborators together and runs one SSO configuration."""

    def __init__(
        self,
        config: Optional[SsoConfig] = None,
        usage: Optional[JsonUsageLogger] = None,
        executor: Optional[CommandExecutor] = None,
        credential_store: Optional[CredentialStore] = None,
        writer: Optional[ApplicationDataWriter] = None,
        platform: str = sys.platform,
    ):
        self.config = config or SsoConfig()
        self.usage = usage or JsonUsageLogger(
            name=self.config.usage_data.logger_name,
            enabled=self.config.usage_data.enabled,
        )
        self.executor = executor or CommandExecutor(self.usage, self.config.executor.max_buffer_bytes)
        self.installer = AzureCliInstaller(self.executor, self.usage, self.config.cli, platform=platform)
        self.sessions = SessionManager(self.executor, self.usage)
        self.registrar = ApplicationRegistrar(
            self.executor,
            self.usage,
            credential_store or DotenvCredentialStore(self.config.credential_store.resolve_path()),
            settings=self.config.registration,
            poller=ReadinessPoller(
                self.executor,
                self.usage,
                max_attempts=self.config.readiness.max_attempts,
                initial_delay=self.config.readiness.initial_delay,
                max_delay=self.config.readiness.max_delay,
            ),
        )
        self.writer = writer or ApplicationDataWriter()

    async def ensure_cli(self) -> bool:
        """Return True when the Azure CLI is ready to use in this run."""
        if await self.installer.is_present():
            return True

        logger.warning("Azure CLI is not installed. Installing now before proceeding")
        await self.installer.install()
        if self.installer.restart_required:
            logger.warning(
                "Please close your command shell, reopen and run configure-sso again. "
                "This is necessary to register the path to the Azure CLI"
            )
        else:
            logger.warning("Azure CLI installed. Run configure-sso again to register the application")
        return False

    async def run(self, manifest_path: Union[str, Path], port: str) -> Optional[ApplicationRecord]:
        """Register the add-in application.

        Returns None only when the Azure CLI was just installed and the user must
        re-run. A creation command that returns nothing raises RegistrationError
        once the session has been logged out.
        """
        started = time.monotonic()
        if not await self.ensure_cli():
            return None

        async with self.sessions.logged_in() as session:
            app_name = read_manifest_display_name(manifest_path)
            record = await self.registrar.register(app_name, port, session)
            if record is not None:
                self.writer.write(record.app_id, port, manifest_path)

        if record is None:
            raise RegistrationError("Failed to register application", step="create_application")

        logger.info(
            "Application with id %s successfully registered in Azure. Go to https://portal.azure.com/#home "
            "and search for 'App Registrations' to see your application",
            record.app_id,
        )
        self.usage.custom_event(
            "configure_sso_application",
            config_duration=round(time.monotonic() - started, 3),
        )
        return record


async def configure_sso_application(
    manifest_path: Union[str, Path],
    port: str,
    config: Optional[SsoConfig] = None,
    **collaborators,
) -> Optional[ApplicationRecord]:
    return await SsoConfigurator(config, **collaborators).run(manifest_path, port)
