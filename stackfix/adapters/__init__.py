"""Adapters — transports that run commands for fixes.

Public re-exports for convenient access.
"""

from stackfix.adapters.base import Executor
from stackfix.adapters.factory import executor_for
from stackfix.adapters.local import LocalExecutor
from stackfix.adapters.mock import MockExecutor
from stackfix.adapters.ssh import SshExecutor

__all__ = [
    "Executor",
    "LocalExecutor",
    "MockExecutor",
    "SshExecutor",
    "executor_for",
]
