"""
Mock executor — test double for every executor operation.

Returns success for everything by default. Individual commands can be
configured to return custom output or to fail, and every call is
recorded in ``call_log``.
"""

from __future__ import annotations

from stackfix.adapters.base import DEFAULT_TIMEOUT, Executor
from stackfix.core.models.action import Receipt


class MockExecutor(Executor):
    """Universal mock executor for testing."""

    def __init__(
        self,
        executor_name: str = "mock",
        available: bool = True,
        default_output: str = "",
    ):
        self._name = executor_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._call_log: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[str]:
        """Every command this mock has received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def is_available(self) -> bool:
        return self._available

    def set_output(self, command: str, output: str) -> None:
        """Configure a command to succeed with ``output``."""
        self._responses[command] = Receipt.success(
            executor=self._name, command=command, output=output,
        )

    def set_failure(self, command: str, error: str = "Mock failure") -> None:
        """Configure a command to fail."""
        self._responses[command] = Receipt.failure(
            executor=self._name, command=command, error=error, return_code=1,
        )

    def clear(self, command: str) -> None:
        """Drop a configured response so the command succeeds again."""
        self._responses.pop(command, None)

    def execute(self, command: str, timeout: int = DEFAULT_TIMEOUT) -> Receipt:
        self._call_log.append(command)
        if command in self._responses:
            return self._responses[command]
        return Receipt.success(
            executor=self._name,
            command=command,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
