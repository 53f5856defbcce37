"""
Fix use case — scan, then remediate what the scan found.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from stackfix.adapters.factory import executor_for
from stackfix.core.errors import StackfixError
from stackfix.core.scanfix.context import ExecutorFactory
from stackfix.core.scanfix.orchestrator import DEFAULT_MAX_WORKERS, FixReport
from stackfix.core.use_cases.bootstrap import Workspace, load_workspace
from stackfix.core.use_cases.scan import build_orchestrator, resolve_stages

logger = logging.getLogger(__name__)


@dataclass
class FixResult:
    """Fix reports for every requested stage."""

    reports: list[FixReport] = field(default_factory=list)
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


def run_fix(
    stage: str | None = None,
    os: str | None = None,
    concurrency: int = DEFAULT_MAX_WORKERS,
    config_path: Path | None = None,
    workspace: Workspace | None = None,
    executor_factory: ExecutorFactory = executor_for,
) -> FixResult:
    """Scan and fix one stage, or every stage in order."""
    try:
        workspace = workspace or load_workspace(config_path)
        stages = resolve_stages(stage)
    except (StackfixError, ValueError) as e:
        return FixResult(error=str(e))

    orchestrator = build_orchestrator(workspace, concurrency, executor_factory)
    result = FixResult(project_name=workspace.config.name)
    for s in stages:
        report = orchestrator.fix(s, os)
        logger.info(
            "%s: %d fixed, %d failed, %d manual", s, report.fixed, report.failed, report.manual
        )
        result.reports.append(report)
    return result
