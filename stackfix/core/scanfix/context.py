"""
Fix context — what a scan or fix sees besides the stack config.

One context is built per Fix invocation so that the notes a fix
records come back attached to that fix's outcome.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from stackfix.adapters.base import Executor
from stackfix.core.models.fix import Platform, Stage
from stackfix.core.models.stack import EnvironmentConfig
from stackfix.core.secrets.store import SecretStore

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[..., Executor]


@dataclass
class FixContext:
    """Per-invocation context handed to ``scan`` and ``fix``.

    ``executor`` is built on first access; building it raises
    ConfigurationError when the target can't be reached (no host,
    no SSH key), which the orchestrator reports as a manual finding.
    """

    root_dir: Path
    stage: Stage
    platform: Platform
    env: EnvironmentConfig | None
    secrets: SecretStore
    executor_factory: ExecutorFactory
    notes: list[str] = field(default_factory=list)
    _executor: Executor | None = field(default=None, init=False, repr=False)

    @property
    def executor(self) -> Executor:
        if self._executor is None:
            self._executor = self.executor_factory(
                self.stage, self.env, self.secrets, self.root_dir
            )
        return self._executor

    @property
    def is_local(self) -> bool:
        return self.stage == Stage.DEV

    @property
    def target_configured(self) -> bool:
        """Whether there is anything to check for this stage.

        Always true locally. Remote stages need an environment with a
        real (non-placeholder) domain.
        """
        if self.is_local:
            return True
        return self.env is not None and self.env.is_configured

    @property
    def label(self) -> str:
        return "locally" if self.is_local else f"on {self.stage} server"

    def note(self, message: str, *args: object) -> None:
        """Record a progress message for this fix's outcome."""
        text = message % args if args else message
        self.notes.append(text)
        logger.info("[%s] %s", self.stage, text)
