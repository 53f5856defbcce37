"""
Executor base — the contract between fixes and the machines they touch.

Fixes never shell out directly. They ask their context's executor to
run a command, locally or on a remote host, and get a Receipt back.

    execute(command)  → Receipt, never raises
    run(command)      → stdout, raises RemoteCommandError on failure
    succeeds(command) → bool
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from stackfix.core.errors import RemoteCommandError
from stackfix.core.models.action import Receipt

DEFAULT_TIMEOUT = 120


class Executor(ABC):
    """Abstract base class for all executors.

    To create a new executor:
        1. Subclass Executor
        2. Implement name, is_available, execute
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The executor identifier (e.g., 'local', 'ssh')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the underlying transport is usable. Never raises."""

    @abstractmethod
    def execute(self, command: str, timeout: int = DEFAULT_TIMEOUT) -> Receipt:
        """Run a shell command and return a receipt.

        MUST never raise exceptions. All failures are captured
        in the Receipt with status='failed'.
        """

    def run(self, command: str, timeout: int = DEFAULT_TIMEOUT) -> str:
        """Run a command and return its stdout, raising on failure."""
        receipt = self.execute(command, timeout=timeout)
        if receipt.failed:
            raise RemoteCommandError(command, receipt.error or "failed", receipt.output)
        return receipt.output

    def succeeds(self, command: str, timeout: int = DEFAULT_TIMEOUT) -> bool:
        """Whether the command exits zero."""
        return self.execute(command, timeout=timeout).ok

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
