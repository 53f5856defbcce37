"""
SSH executor — run shell commands on a remote host via the ssh client.

Key material is never kept on disk: it is written to a 0600 temp file
for the duration of each command and removed afterwards.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from stackfix.adapters.base import DEFAULT_TIMEOUT, Executor
from stackfix.adapters.local import _run_shell
from stackfix.core.models.action import Receipt
from stackfix.core.secrets.store import materialized_key

logger = logging.getLogger(__name__)


class SshExecutor(Executor):
    """Execute commands on ``user@host``.

    Args:
        host: Hostname or IP address.
        user: Remote login user.
        key_material: Private key contents (materialized per command).
        key_path: Existing private key file, used when no material is given.
        connect_timeout: Seconds ssh waits for the TCP connection.
    """

    def __init__(
        self,
        host: str,
        user: str = "ubuntu",
        key_material: str | None = None,
        key_path: Path | str | None = None,
        connect_timeout: int = 10,
    ):
        self.host = host
        self.user = user
        self._key_material = key_material
        self.key_path = Path(key_path) if key_path else None
        self.connect_timeout = connect_timeout

    @property
    def name(self) -> str:
        return "ssh"

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}"

    def is_available(self) -> bool:
        return shutil.which("ssh") is not None

    def build_argv(self, command: str, key_file: Path | None) -> list[str]:
        """The ssh invocation for ``command`` using ``key_file``."""
        argv = ["ssh"]
        if key_file is not None:
            argv += ["-i", str(key_file)]
        argv += [
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self.connect_timeout}",
            self.target,
            command,
        ]
        return argv

    def execute(self, command: str, timeout: int = DEFAULT_TIMEOUT) -> Receipt:
        logger.debug("Executing on %s: %s", self.target, command)
        if self._key_material:
            try:
                with materialized_key(self._key_material) as key_file:
                    return self._execute(command, key_file, timeout)
            except OSError as e:
                return Receipt.failure(
                    executor=self.name,
                    command=command,
                    error=f"Cannot write key file: {e}",
                )
        return self._execute(command, self.key_path, timeout)

    def _execute(self, command: str, key_file: Path | None, timeout: int) -> Receipt:
        receipt = _run_shell(
            self.name,
            command,
            self.build_argv(command, key_file),
            timeout=timeout,
        )
        receipt.metadata["host"] = self.host
        return receipt
