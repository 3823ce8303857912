from __future__ import annotations

import io
from typing import Any, Callable, List, Sequence, Tuple, Union

import pytest

from addin_sso.usage_data import InMemoryUsageStore, JsonUsageLogger

Response = Union[Any, BaseException, Callable[[str], Any]]


class FakeExecutor:
    """Answers commands from a list of (substring, response) pairs, first match wins."""

    def __init__(self, responses: Sequence[Tuple[str, Response]] = ()):
        self.responses: List[Tuple[str, Response]] = list(responses)
        self.calls: List[str] = []
        self.options: List[Tuple[bool, bool]] = []

    async def execute(self, command: str, parse_json: bool = True, allow_failure: bool = False) -> Any:
        self.calls.append(command)
        self.options.append((parse_json, allow_failure))
        for needle, response in self.responses:
            if needle in command:
                if isinstance(response, BaseException):
                    raise response
                if callable(response):
                    return response(command)
                return response
        return ""

    def matching(self, needle: str) -> List[str]:
        return [call for call in self.calls if needle in call]


@pytest.fixture
def usage_store() -> InMemoryUsageStore:
    return InMemoryUsageStore()


@pytest.fixture
def usage(usage_store) -> JsonUsageLogger:
    return JsonUsageLogger(name="addin_sso.usage.tests", store=usage_store, stream=io.StringIO())
