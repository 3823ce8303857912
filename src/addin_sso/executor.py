from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from .errors import ExecutionError
from .usage_data import JsonUsageLogger

logger = logging.getLogger(__name__)


class CommandExecutor:
    """Runs command lines through the platform shell and returns their output.

    Results are parsed JSON when ``parse_json`` is set and stdout is not blank,
    the raw text otherwise. Blank stdout always comes back as ``""``.
    """

    def __init__(self, usage: JsonUsageLogger, max_buffer_bytes: int = 1024 * 102400):
        self.usage = usage
        self.max_buffer_bytes = max_buffer_bytes

    async def execute(self, command: str, parse_json: bool = True, allow_failure: bool = False) -> Any:
        try:
            result = await self._run(command, parse_json, allow_failure)
        except ExecutionError as exc:
            self.usage.exception("execute_command", str(exc))
            raise
        self.usage.success("execute_command")
        return result

    async def _run(self, command: str, parse_json: bool, allow_failure: bool) -> Any:
        logger.debug("Running: %s", command)
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout_bytes, stderr_bytes = await process.communicate()
        except OSError as exc:
            raise ExecutionError(f"Unable to start command: {exc}", command=command) from exc

        if len(stdout_bytes) > self.max_buffer_bytes:
            raise ExecutionError(
                f"Command output exceeded {self.max_buffer_bytes} bytes",
                command=command,
                returncode=process.returncode,
            )

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")

        if process.returncode != 0 and not allow_failure:
            logger.error(stderr.strip())
            raise ExecutionError(
                stderr.strip() or f"Command exited with status {process.returncode}",
                command=command,
                returncode=process.returncode,
                stderr=stderr,
            )

        if not stdout.strip():
            return ""

        if not parse_json:
            return stdout

        try:
            return json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise ExecutionError(
                f"Unable to parse command output as JSON: {exc}",
                command=command,
                returncode=process.returncode,
                stderr=stderr,
            ) from exc
