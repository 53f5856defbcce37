"""
Scan/fix orchestrator — the reconciliation loop.

The orchestrator asks the registry for every fix, narrows them to the
ones that apply to a stage, runs every scan, and (on request) runs the
remediations for what the scans found.

Flow:
    IDLE → SCANNING → REPORTED              (scan)
    IDLE → SCANNING → FIXING → DONE         (fix)

Failure policy:
    - A scan that raises reports "no problem" (fail-open, logged at DEBUG)
      and carries the cause as a ProbeError. ConfigurationError is the
      exception: it becomes a manual finding.
    - A fix that raises is treated exactly like one that returns False.
      A False return surfaces as a RemediationError on the outcome.
    - Nothing an individual fix does escapes; siblings always run.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from stackfix.adapters.factory import executor_for
from stackfix.core.errors import ConfigurationError, ProbeError, RemediationError
from stackfix.core.models.fix import Fix, Platform, Severity, Stage
from stackfix.core.models.stack import StackConfig
from stackfix.core.observability.logging_config import fix_scope
from stackfix.core.plugins.registry import PluginRegistry
from stackfix.core.scanfix.applicability import filter_applicable
from stackfix.core.scanfix.context import ExecutorFactory, FixContext
from stackfix.core.scanfix.platform import detect_platform
from stackfix.core.secrets.store import SecretStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class OrchestratorState(StrEnum):
    """Lifecycle of one orchestrator invocation."""

    IDLE = "idle"
    SCANNING = "scanning"
    REPORTED = "reported"
    FIXING = "fixing"
    DONE = "done"


# ── Results ─────────────────────────────────────────────────────


@dataclass
class Finding:
    """Result of one scan predicate."""

    fix: Fix
    problem: bool
    error: str | None = None
    manual_only: bool = False
    notes: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def id(self) -> str:
        return self.fix.id

    @property
    def severity(self) -> Severity:
        return self.fix.severity

    @property
    def manual(self) -> bool:
        """Whether only the operator can resolve this."""
        return self.manual_only or self.fix.manual_only

    @property
    def manual_fix(self) -> str:
        if self.manual_only and self.error:
            return self.error
        return self.fix.manual_fix

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "plugin": self.fix.plugin,
            "severity": str(self.severity),
            "description": self.fix.description,
            "problem": self.problem,
            "manual": self.manual,
            "manual_fix": self.manual_fix if self.problem else None,
            "error": self.error,
            "notes": self.notes,
        }


@dataclass
class ScanReport:
    """All findings of one scan, in applicability order."""

    stage: Stage
    platform: Platform | None = None
    findings: list[Finding] = field(default_factory=list)

    @property
    def problems(self) -> list[Finding]:
        return [f for f in self.findings if f.problem]

    def by_severity(self) -> dict[Severity, list[Finding]]:
        """Problems grouped by severity, most severe first."""
        groups: dict[Severity, list[Finding]] = {s: [] for s in Severity}
        for finding in self.problems:
            groups[finding.severity].append(finding)
        return groups

    @property
    def critical(self) -> int:
        return len(self.by_severity()[Severity.CRITICAL])

    @property
    def ok(self) -> bool:
        """False when any critical problem was found."""
        return self.critical == 0

    def to_dict(self) -> dict:
        groups = self.by_severity()
        return {
            "stage": str(self.stage),
            "platform": str(self.platform) if self.platform else None,
            "ok": self.ok,
            "checked": len(self.findings),
            "problems": len(self.problems),
            "by_severity": {str(s): [f.id for f in groups[s]] for s in Severity},
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclass
class FixOutcome:
    """Result of remediating one finding."""

    id: str
    severity: Severity
    resolved: bool = False
    manual: bool = False
    manual_fix: str = ""
    error: str | None = None
    notes: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def status(self) -> str:
        if self.resolved:
            return "fixed"
        if self.manual:
            return "manual"
        return "failed"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "severity": str(self.severity),
            "status": self.status,
            "resolved": self.resolved,
            "manual": self.manual,
            "manual_fix": self.manual_fix if not self.resolved else None,
            "error": self.error,
            "notes": self.notes,
            "duration_ms": self.duration_ms,
        }


@dataclass
class FixReport:
    """Per-item outcomes of a fix run, plus the scan that drove it."""

    stage: Stage
    scan: ScanReport | None = None
    outcomes: list[FixOutcome] = field(default_factory=list)

    @property
    def fixed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "fixed")

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")

    @property
    def manual(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "manual")

    @property
    def unresolved_critical(self) -> int:
        return sum(
            1 for o in self.outcomes
            if not o.resolved and o.severity == Severity.CRITICAL
        )

    @property
    def ok(self) -> bool:
        return self.unresolved_critical == 0

    @property
    def status(self) -> str:
        if self.failed == 0 and self.manual == 0:
            return "ok"
        if self.fixed > 0:
            return "partial"
        return "failed"

    def to_dict(self) -> dict:
        return {
            "stage": str(self.stage),
            "status": self.status,
            "ok": self.ok,
            "fixed": self.fixed,
            "failed": self.failed,
            "manual": self.manual,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


# ── Orchestrator ────────────────────────────────────────────────


class ScanFixOrchestrator:
    """Run scans and remediations for one project.

    Args:
        registry: Source of all fixes.
        config: Loaded stack configuration (read-only).
        root_dir: Project root.
        secrets: Secret store handed to every fix.
        executor_factory: Builds the executor for a stage; default
            picks local for dev and ssh for remote stages.
        max_workers: Upper bound on concurrently running scans.
        platform: Local platform override (default: detected).
    """

    def __init__(
        self,
        registry: PluginRegistry,
        config: StackConfig,
        root_dir: Path,
        secrets: SecretStore,
        executor_factory: ExecutorFactory = executor_for,
        max_workers: int = DEFAULT_MAX_WORKERS,
        platform: Platform | None = None,
    ):
        self.registry = registry
        self.config = config
        self.root_dir = Path(root_dir)
        self.secrets = secrets
        self.executor_factory = executor_factory
        self.max_workers = max(1, max_workers)
        self.local_platform = platform or detect_platform()
        self.state = OrchestratorState.IDLE

    # ── Resolution ──────────────────────────────────────────────

    def target_platform(self, stage: Stage | str) -> Platform:
        """Local platform for dev; the environment's OS otherwise."""
        stage = Stage(stage)
        if stage == Stage.DEV:
            return self.local_platform
        env = self.config.for_stage(stage)
        return env.target_platform if env else Platform.UBUNTU

    def applicable(self, stage: Stage | str, os: Platform | str | None = None) -> list[Fix]:
        stage = Stage(stage)
        platform = Platform(os) if os else self.target_platform(stage)
        fixes = self.registry.collect_fixes(self.root_dir, self.config)
        return filter_applicable(fixes, stage, platform)

    def context(self, stage: Stage | str, platform: Platform | None = None) -> FixContext:
        """A fresh context for one scan or fix invocation."""
        stage = Stage(stage)
        return FixContext(
            root_dir=self.root_dir,
            stage=stage,
            platform=platform or self.target_platform(stage),
            env=self.config.for_stage(stage),
            secrets=self.secrets,
            executor_factory=self.executor_factory,
        )

    # ── Scan ────────────────────────────────────────────────────

    def scan(self, stage: Stage | str, os: Platform | str | None = None) -> ScanReport:
        """Run every applicable scan. Never raises for a single fix."""
        stage = Stage(stage)
        platform = Platform(os) if os else self.target_platform(stage)
        self.state = OrchestratorState.SCANNING
        fixes = self.applicable(stage, platform)
        logger.info("Scanning %d fix(es) for %s on %s", len(fixes), stage, platform)

        report = ScanReport(stage=stage, platform=platform)
        if fixes:
            workers = min(self.max_workers, len(fixes))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                # map() yields in submission order: findings keep applicability order
                report.findings = list(
                    pool.map(lambda fix: self._scan_one(fix, stage, platform), fixes)
                )

        self.state = OrchestratorState.REPORTED
        return report

    def _scan_one(self, fix: Fix, stage: Stage, platform: Platform) -> Finding:
        with fix_scope(fix.id):
            return self._run_scan(fix, stage, platform)

    def _run_scan(self, fix: Fix, stage: Stage, platform: Platform) -> Finding:
        ctx = self.context(stage, platform)
        start = time.monotonic()
        try:
            problem = bool(fix.scan(self.config, ctx))
            finding = Finding(fix=fix, problem=problem)
        except ConfigurationError as e:
            logger.info("%s: configuration missing: %s", fix.id, e)
            finding = Finding(fix=fix, problem=True, error=str(e), manual_only=True)
        except Exception as e:
            error = e if isinstance(e, ProbeError) else ProbeError(f"{type(e).__name__}: {e}")
            logger.debug("%s: scan raised, treating as no problem: %s", fix.id, error)
            finding = Finding(fix=fix, problem=False, error=str(error))
        finding.notes = ctx.notes
        finding.duration_ms = int((time.monotonic() - start) * 1000)
        return finding

    # ── Fix ─────────────────────────────────────────────────────

    def fix(self, stage: Stage | str, os: Platform | str | None = None) -> FixReport:
        """Scan, then remediate every problem in applicability order."""
        scan = self.scan(stage, os)
        report = self.apply(scan.problems, stage=scan.stage, platform=scan.platform)
        report.scan = scan
        return report

    def apply(
        self,
        findings: list[Finding],
        stage: Stage | str | None = None,
        platform: Platform | None = None,
    ) -> FixReport:
        """Remediate ``findings`` sequentially. Findings without a problem are skipped."""
        self.state = OrchestratorState.FIXING
        if stage is None:
            stage = findings[0].fix.stage if findings else Stage.DEV
        report = FixReport(stage=Stage(stage))

        for finding in findings:
            if not finding.problem:
                continue
            outcome = self._fix_one(finding, platform)
            report.outcomes.append(outcome)
            marker = {"fixed": "✓", "failed": "✗", "manual": "⊘"}[outcome.status]
            logger.info("%s %s → %s", marker, outcome.id, outcome.status)

        self.state = OrchestratorState.DONE
        return report

    def _fix_one(self, finding: Finding, platform: Platform | None) -> FixOutcome:
        fix = finding.fix
        outcome = FixOutcome(id=fix.id, severity=fix.severity, manual_fix=finding.manual_fix)

        if finding.manual or fix.fix is None:
            outcome.manual = True
            return outcome

        ctx = self.context(fix.stage, platform)
        start = time.monotonic()
        try:
            with fix_scope(fix.id):
                outcome.resolved = bool(fix.fix(self.config, ctx))
            if not outcome.resolved:
                raise RemediationError(f"{fix.id} is still unresolved")
        except ConfigurationError as e:
            outcome.error = str(e)
            outcome.manual = True
            outcome.manual_fix = str(e)
        except RemediationError as e:
            logger.info("%s: %s", fix.id, e)
            outcome.error = str(e)
        except Exception as e:
            logger.warning("%s: remediation raised: %s", fix.id, e)
            outcome.error = f"{type(e).__name__}: {e}"
        outcome.notes = ctx.notes
        outcome.duration_ms = int((time.monotonic() - start) * 1000)

        if not outcome.resolved and not outcome.manual and fix.manual_fix:
            outcome.manual_fix = fix.manual_fix
        return outcome
