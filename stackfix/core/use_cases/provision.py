"""
Provision use case — bring one environment's cloud resources into being.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from stackfix.core.errors import ProvisioningError, StackfixError
from stackfix.core.models.resource import ProvisionResult
from stackfix.core.use_cases.bootstrap import Workspace, load_workspace

logger = logging.getLogger(__name__)


@dataclass
class ProvisionRunResult:
    """Outcome of ``run_provision``."""

    environment: str = ""
    result: ProvisionResult | None = None
    error: str | None = None
    failed_role: str | None = None
    cleaned_up: list[str] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None

    def to_dict(self) -> dict:
        if self.error:
            data: dict = {"environment": self.environment, "error": self.error}
            if self.failed_role:
                data["failed_role"] = self.failed_role
            if self.cleaned_up is not None:
                data["cleaned_up"] = self.cleaned_up
            return data
        return {
            "environment": self.environment,
            **(self.result.to_dict() if self.result else {}),
        }


def run_provision(
    environment: str,
    wait_ready: bool = True,
    until: str | None = None,
    config_path: Path | None = None,
    workspace: Workspace | None = None,
    pipeline: Any = None,
) -> ProvisionRunResult:
    """Provision ``environment`` through its provider's pipeline plugin."""
    run = ProvisionRunResult(environment=environment)
    try:
        workspace = workspace or load_workspace(config_path)
        env = workspace.config.get_environment(environment)
        if env is None:
            raise StackfixError(f"Unknown environment: {environment}")
        if not env.provider:
            raise StackfixError(f"Environment '{environment}' has no provider")
        if pipeline is None:
            pipeline = workspace.registry.create_instance(
                "pipeline", env.provider, workspace.config, workspace.secrets
            )
        run.result = pipeline.provision(env, until=until, wait_ready=wait_ready)
    except ProvisioningError as e:
        logger.error("Provisioning %s failed: %s", environment, e)
        run.error = str(e)
        run.failed_role = e.role
        run.cleaned_up = list(e.cleaned_up)
    except StackfixError as e:
        run.error = str(e)
    return run
