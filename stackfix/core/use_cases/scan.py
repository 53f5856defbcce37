"""
Scan use case — report what is wrong, per stage, without changing anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from stackfix.adapters.factory import executor_for
from stackfix.core.errors import StackfixError
from stackfix.core.models.fix import STAGES, Stage
from stackfix.core.scanfix.context import ExecutorFactory
from stackfix.core.scanfix.orchestrator import (
    DEFAULT_MAX_WORKERS,
    ScanFixOrchestrator,
    ScanReport,
)
from stackfix.core.use_cases.bootstrap import Workspace, load_workspace

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Scan reports for every requested stage."""

    reports: list[ScanReport] = field(default_factory=list)
    project_name: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and all(r.ok for r in self.reports)

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "project": self.project_name,
            "ok": self.ok,
            "stages": [r.to_dict() for r in self.reports],
        }


def resolve_stages(stage: str | None) -> list[Stage]:
    """One stage, or all of them in dev → staging → prod order."""
    if stage:
        return [Stage(stage)]
    return list(STAGES)


def build_orchestrator(
    workspace: Workspace,
    concurrency: int = DEFAULT_MAX_WORKERS,
    executor_factory: ExecutorFactory = executor_for,
) -> ScanFixOrchestrator:
    return ScanFixOrchestrator(
        registry=workspace.registry,
        config=workspace.config,
        root_dir=workspace.root_dir,
        secrets=workspace.secrets,
        executor_factory=executor_factory,
        max_workers=concurrency,
    )


def run_scan(
    stage: str | None = None,
    os: str | None = None,
    concurrency: int = DEFAULT_MAX_WORKERS,
    config_path: Path | None = None,
    workspace: Workspace | None = None,
    executor_factory: ExecutorFactory = executor_for,
) -> ScanResult:
    """Scan one stage, or every stage."""
    try:
        workspace = workspace or load_workspace(config_path)
        stages = resolve_stages(stage)
    except (StackfixError, ValueError) as e:
        return ScanResult(error=str(e))

    orchestrator = build_orchestrator(workspace, concurrency, executor_factory)
    result = ScanResult(project_name=workspace.config.name)
    for s in stages:
        result.reports.append(orchestrator.scan(s, os))
    return result
