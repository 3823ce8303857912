from __future__ import annotations

import asyncio
import logging

from .errors import ExecutionError
from .executor import CommandExecutor
from .templates import APP_ID, render_template
from .usage_data import JsonUsageLogger

logger = logging.getLogger(__name__)

APP_SHOW_COMMAND = "az ad app show --id <APP-ID>"


class ReadinessPoller:
    """Waits for a newly created application to become visible in the directory."""

    def __init__(
        self,
        executor: CommandExecutor,
        usage: JsonUsageLogger,
        max_attempts: int = 51,
        initial_delay: float = 0.5,
        max_delay: float = 5.0,
    ):
        self.executor = executor
        self.usage = usage
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay

    async def is_ready(self, app_id: str) -> bool:
        command = render_template(APP_SHOW_COMMAND, {APP_ID: app_id})
        try:
            result = await self.executor.execute(command, allow_failure=True)
        except ExecutionError as exc:
            logger.debug("Application %s not visible yet: %s", app_id, exc)
            return False
        return bool(result)

    async def wait_until_ready(self, app_id: str) -> bool:
        delay = self.initial_delay
        for attempt in range(1, self.max_attempts + 1):
            if await self.is_ready(app_id):
                self.usage.custom_event("application_ready", attempts=attempt)
                return True
            if attempt == self.max_attempts:
                break
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_delay)

        self.usage.exception("application_ready", f"Application {app_id} not ready after {self.max_attempts} attempts")
        return False
