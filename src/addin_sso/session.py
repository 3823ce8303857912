from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from .errors import ExecutionError, RegistrationError
from .executor import CommandExecutor
from .usage_data import JsonUsageLogger

logger = logging.getLogger(__name__)

LOGIN_COMMAND = "az login --allow-no-subscriptions"
FALLBACK_LOGIN_COMMAND = "az login"
LOGOUT_COMMAND = "az logout"


@dataclass
class Session:
    user_info: Any
    is_tenant_admin: bool = False

    @property
    def logged_in(self) -> bool:
        return bool(self.user_info) and len(self.user_info) >= 1

    @property
    def user_name(self) -> Optional[str]:
        if not self.logged_in or not isinstance(self.user_info, list):
            return None
        user = self.user_info[0].get("user") or {}
        return user.get("name")


class SessionManager:
    """Logs the user in and out of Azure through ``az login``/``az logout``."""

    def __init__(self, executor: CommandExecutor, usage: JsonUsageLogger):
        self.executor = executor
        self.usage = usage

    async def login(self) -> Session:
        logger.info("Opening browser for authentication to Azure. Enter valid Azure credentials")
        user_info = await self.executor.execute(LOGIN_COMMAND, allow_failure=True)
        session = Session(user_info=user_info)
        if session.logged_in:
            return session

        logger.warning("Login did not return an account, retrying without --allow-no-subscriptions")
        await self.logout()
        return Session(user_info=await self.executor.execute(FALLBACK_LOGIN_COMMAND))

    async def logout(self) -> None:
        logger.info("Logging out of Azure now")
        try:
            await self.executor.execute(LOGOUT_COMMAND, parse_json=False)
        except ExecutionError as exc:
            logger.warning("Logout failed: %s", exc)

    @asynccontextmanager
    async def logged_in(self) -> AsyncIterator[Session]:
        """Yield a logged-in session and log out on every exit path."""
        session = await self.login()
        if not session.logged_in:
            message = "Login to Azure did not succeed"
            self.usage.exception("login", message)
            raise RegistrationError(message, step="login")

        logger.info("Login was successful!")
        try:
            yield session
        finally:
            await self.logout()
