from __future__ import annotations

from typing import Iterable, Optional


class SsoConfigurationError(Exception):
    """Base class for failures surfaced to the command line."""


class ExecutionError(SsoConfigurationError):
    """A command failed or produced output that could not be parsed."""

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class UnsupportedPlatformError(SsoConfigurationError):
    def __init__(self, platform: str):
        super().__init__(f"Platform not supported: {platform}")
        self.platform = platform


class RegistrationError(SsoConfigurationError):
    """A registration step failed; ``step`` names the step."""

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class TemplateError(SsoConfigurationError):
    def __init__(self, missing: Iterable[str]):
        self.missing = sorted(set(missing))
        super().__init__(f"Command template has unsubstituted placeholders: {', '.join(self.missing)}")
