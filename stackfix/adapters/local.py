"""
Local executor — run shell commands on this machine.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from pathlib import Path

from stackfix.adapters.base import DEFAULT_TIMEOUT, Executor
from stackfix.core.models.action import Receipt

logger = logging.getLogger(__name__)


class LocalExecutor(Executor):
    """Execute shell commands locally and capture output.

    Args:
        cwd: Working directory for every command (default: inherit).
    """

    def __init__(self, cwd: Path | str | None = None):
        self.cwd = str(cwd) if cwd else None

    @property
    def name(self) -> str:
        return "local"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None or shutil.which("cmd") is not None

    def execute(self, command: str, timeout: int = DEFAULT_TIMEOUT) -> Receipt:
        logger.debug("Executing: %s (cwd=%s)", command, self.cwd)
        return _run_shell(self.name, command, command, timeout=timeout, cwd=self.cwd)


def _run_shell(
    executor: str,
    command: str,
    argv: str | list[str],
    timeout: int,
    cwd: str | None = None,
) -> Receipt:
    """Run ``argv`` (a shell string or an argv list) and build a Receipt.

    ``command`` is what gets recorded on the receipt; for ssh that is
    the remote command, not the full ssh invocation.
    """
    start = time.monotonic()
    try:
        result = subprocess.run(
            argv,
            shell=isinstance(argv, str),
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return Receipt.failure(
            executor=executor,
            command=command,
            error=f"Command timed out after {timeout}s",
            metadata={"timeout": timeout},
        )
    except Exception as e:
        return Receipt.failure(
            executor=executor,
            command=command,
            error=f"Command execution error: {e}",
        )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    output = result.stdout.strip()
    stderr = result.stderr.strip()

    if result.returncode == 0:
        return Receipt.success(
            executor=executor,
            command=command,
            output=output,
            duration_ms=elapsed_ms,
            return_code=0,
            metadata={"stderr": stderr},
        )
    return Receipt.failure(
        executor=executor,
        command=command,
        error=stderr or f"Command exited with code {result.returncode}",
        output=output,
        duration_ms=elapsed_ms,
        return_code=result.returncode,
    )
