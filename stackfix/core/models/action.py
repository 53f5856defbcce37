"""
Receipt model — the executor contract.

Every command an executor runs comes back as a Receipt. Executors
never raise: a non-zero exit, a timeout, or a transport error is
captured here with status='failed'.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Result of running one command through an executor."""

    executor: str
    command: str
    status: Literal["ok", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    return_code: int | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the command succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the command failed."""
        return self.status == "failed"

    @classmethod
    def success(
        cls,
        executor: str,
        command: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            executor=executor,
            command=command,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        executor: str,
        command: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            executor=executor,
            command=command,
            status="failed",
            error=error,
            **kwargs,
        )
