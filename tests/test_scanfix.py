"""
Tests for the scan/fix engine — applicability filter and orchestrator.
"""

import threading
import time
from pathlib import Path

import pytest

from stackfix.core.errors import ConfigurationError, ProbeError, RemediationError
from stackfix.core.models.fix import Fix, Platform, Severity, Stage
from stackfix.core.models.plugin import PluginDescriptor
from stackfix.core.plugins.registry import PluginRegistry
from stackfix.core.scanfix.applicability import applicable_for, filter_applicable
from stackfix.core.scanfix.orchestrator import OrchestratorState, ScanFixOrchestrator


def _fix(fix_id, stage="dev", os=None, scan=None, fix=None, manual_fix="", severity="critical"):
    return Fix(
        id=fix_id,
        stage=stage,
        description=f"{fix_id} description",
        scan=scan or (lambda config, ctx: True),
        fix=fix,
        manual_fix=manual_fix or ("" if fix else f"manually fix {fix_id}"),
        os=os,
        severity=severity,
    )


def _registry(*fixes: Fix) -> PluginRegistry:
    registry = PluginRegistry(approved=())
    registry.register(PluginDescriptor(id="test", category="addon", fixes=fixes))
    return registry


def _orchestrator(registry, config, secrets, executor_factory, tmp_path, **kw):
    return ScanFixOrchestrator(
        registry=registry,
        config=config,
        root_dir=tmp_path,
        secrets=secrets,
        executor_factory=executor_factory,
        platform=Platform.UBUNTU,
        **kw,
    )


# ── Applicability ───────────────────────────────────────────────


class TestApplicability:
    def test_stage_must_match(self):
        assert not applicable_for(_fix("a", stage="prod"), "dev", "ubuntu")
        assert applicable_for(_fix("a", stage="prod"), Stage.PROD, "ubuntu")

    def test_os_agnostic_fix_applies_everywhere(self):
        fix = _fix("a")
        for platform in Platform:
            assert applicable_for(fix, "dev", platform)
        assert applicable_for(fix, "dev", None)

    def test_os_specific_fix_needs_matching_os(self):
        fix = _fix("a", os=["mac", "ubuntu"])
        assert applicable_for(fix, "dev", "mac")
        assert not applicable_for(fix, "dev", "windows")

    def test_no_os_excludes_os_specific_fixes(self):
        assert not applicable_for(_fix("a", os="mac"), "dev", None)

    def test_filter_preserves_declaration_order(self):
        fixes = [
            _fix("one"),
            _fix("two", stage="prod"),
            _fix("three", os="mac"),
            _fix("four", os="ubuntu"),
            _fix("five"),
        ]
        result = filter_applicable(fixes, "dev", "ubuntu")
        assert [f.id for f in result] == ["one", "four", "five"]

    def test_filter_is_pure(self):
        fixes = [_fix("one"), _fix("two", os="mac")]
        first = filter_applicable(fixes, "dev", "mac")
        second = filter_applicable(fixes, "dev", "mac")
        assert [f.id for f in first] == [f.id for f in second]
        assert len(fixes) == 2


# ── Scan ────────────────────────────────────────────────────────


class TestScan:
    def test_findings_follow_applicability_order(
        self, stack_config, secrets, executor_factory, tmp_path
    ):
        registry = _registry(
            _fix("a", scan=lambda c, x: True),
            _fix("b", scan=lambda c, x: False),
            _fix("c", os="mac"),
            _fix("d", scan=lambda c, x: True, severity="warning"),
        )
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        report = orch.scan("dev")

        assert [f.id for f in report.findings] == ["a", "b", "d"]
        assert [f.id for f in report.problems] == ["a", "d"]
        assert report.critical == 1
        assert not report.ok
        assert orch.state == OrchestratorState.REPORTED

    def test_order_kept_under_concurrency(
        self, stack_config, secrets, executor_factory, tmp_path
    ):
        def slow(delay):
            def scan(config, ctx):
                time.sleep(delay)
                return True
            return scan

        registry = _registry(*[_fix(f"f{i}", scan=slow(0.05 * (5 - i))) for i in range(5)])
        orch = _orchestrator(
            registry, stack_config, secrets, executor_factory, tmp_path, max_workers=5
        )
        report = orch.scan("dev")
        assert [f.id for f in report.findings] == [f"f{i}" for i in range(5)]

    def test_scans_run_concurrently(self, stack_config, secrets, executor_factory, tmp_path):
        active = []
        peak = []
        lock = threading.Lock()

        def scan(config, ctx):
            with lock:
                active.append(1)
                peak.append(len(active))
            time.sleep(0.05)
            with lock:
                active.pop()
            return False

        registry = _registry(*[_fix(f"f{i}", scan=scan) for i in range(4)])
        orch = _orchestrator(
            registry, stack_config, secrets, executor_factory, tmp_path, max_workers=4
        )
        orch.scan("dev")
        assert max(peak) > 1

    def test_raising_scan_is_fail_open(self, stack_config, secrets, executor_factory, tmp_path):
        def boom(config, ctx):
            raise RuntimeError("scan exploded")

        registry = _registry(_fix("boom", scan=boom), _fix("after"))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        report = orch.scan("dev")

        boom_finding, after = report.findings
        assert not boom_finding.problem
        assert boom_finding.error == "RuntimeError: scan exploded"
        assert after.problem

    def test_scan_reason_kept_verbatim(self, stack_config, secrets, executor_factory, tmp_path):
        def unreachable(config, ctx):
            raise ProbeError("host did not answer")

        orch = _orchestrator(
            _registry(_fix("remote", scan=unreachable)),
            stack_config, secrets, executor_factory, tmp_path,
        )
        finding = orch.scan("dev").findings[0]
        assert not finding.problem
        assert finding.error == "host did not answer"

    def test_configuration_error_becomes_manual_finding(
        self, stack_config, secrets, executor_factory, tmp_path
    ):
        def needs_config(config, ctx):
            raise ConfigurationError("Set 'host' for prod")

        registry = _registry(_fix("cfg", scan=needs_config, fix=lambda c, x: True))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        finding = orch.scan("dev").findings[0]

        assert finding.problem
        assert finding.manual
        assert finding.manual_fix == "Set 'host' for prod"

    def test_notes_attached_to_finding(self, stack_config, secrets, executor_factory, tmp_path):
        def noisy(config, ctx):
            ctx.note("looked at %s", "docker")
            return True

        registry = _registry(_fix("noisy", scan=noisy))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        assert orch.scan("dev").findings[0].notes == ["looked at docker"]

    def test_remote_stage_uses_environment_os(
        self, stack_config, secrets, executor_factory, tmp_path
    ):
        registry = _registry(
            _fix("mac-only", stage="prod", os="mac"),
            _fix("ubuntu-only", stage="prod", os="ubuntu"),
        )
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        report = orch.scan("prod")
        assert report.platform == Platform.UBUNTU
        assert [f.id for f in report.findings] == ["ubuntu-only"]

    def test_os_override(self, stack_config, secrets, executor_factory, tmp_path):
        registry = _registry(_fix("mac-only", os="mac"))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        assert [f.id for f in orch.scan("dev", os="mac").findings] == ["mac-only"]

    def test_context_has_stage_environment(
        self, stack_config, secrets, executor_factory, tmp_path
    ):
        seen = {}

        def capture(config, ctx):
            seen["env"] = ctx.env.name
            seen["local"] = ctx.is_local
            return False

        registry = _registry(_fix("cap", stage="prod", scan=capture))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        orch.scan("prod")
        assert seen == {"env": "prod", "local": False}

    def test_scan_has_no_side_effects_on_fixes(
        self, stack_config, secrets, executor_factory, tmp_path
    ):
        calls = []
        registry = _registry(_fix("a", fix=lambda c, x: calls.append(1) or True))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        orch.scan("dev")
        assert calls == []


# ── Fix ─────────────────────────────────────────────────────────


class TestFix:
    def test_idempotent_after_fix(self, stack_config, secrets, executor_factory, tmp_path):
        state = {"installed": False}

        def scan(config, ctx):
            return not state["installed"]

        def fix(config, ctx):
            state["installed"] = True
            return True

        registry = _registry(_fix("tool", scan=scan, fix=fix))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)

        report = orch.fix("dev")
        assert report.fixed == 1
        assert report.status == "ok"
        assert orch.state == OrchestratorState.DONE
        assert orch.scan("dev").problems == []

    def test_partial_failure_isolation(self, stack_config, secrets, executor_factory, tmp_path):
        ran = []

        def raises(config, ctx):
            ran.append("raises")
            raise RuntimeError("boom")

        def returns_false(config, ctx):
            ran.append("false")
            return False

        def works(config, ctx):
            ran.append("works")
            return True

        registry = _registry(
            _fix("raises", fix=raises),
            _fix("false", fix=returns_false),
            _fix("manual"),
            _fix("works", fix=works),
        )
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        report = orch.fix("dev")

        assert len(report.outcomes) == len(report.scan.problems) == 4
        assert [o.status for o in report.outcomes] == ["failed", "failed", "manual", "fixed"]
        assert ran == ["raises", "false", "works"]
        assert "boom" in report.outcomes[0].error
        assert report.status == "partial"
        assert not report.ok

    def test_manual_outcome_carries_text(self, stack_config, secrets, executor_factory, tmp_path):
        registry = _registry(_fix("manual", manual_fix="Open the console"))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        outcome = orch.fix("dev").outcomes[0]
        assert outcome.manual
        assert outcome.manual_fix == "Open the console"

    def test_configuration_error_during_fix_is_manual(
        self, stack_config, secrets, executor_factory, tmp_path
    ):
        def fix(config, ctx):
            raise ConfigurationError("Secret PROD_SSH is not set")

        registry = _registry(_fix("needs-key", fix=fix))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        outcome = orch.fix("dev").outcomes[0]
        assert outcome.status == "manual"
        assert outcome.manual_fix == "Secret PROD_SSH is not set"

    def test_false_return_is_recorded_as_unresolved(
        self, stack_config, secrets, executor_factory, tmp_path
    ):
        registry = _registry(_fix("stuck", fix=lambda config, ctx: False))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        outcome = orch.fix("dev").outcomes[0]
        assert outcome.status == "failed"
        assert outcome.error == "stuck is still unresolved"

    def test_fix_can_explain_its_failure(self, stack_config, secrets, executor_factory, tmp_path):
        def fix(config, ctx):
            raise RemediationError("port 80 is held by apache2")

        registry = _registry(_fix("nginx", fix=fix))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        outcome = orch.fix("dev").outcomes[0]
        assert outcome.status == "failed"
        assert outcome.error == "port 80 is held by apache2"

    def test_failed_outcome_keeps_manual_text(
        self, stack_config, secrets, executor_factory, tmp_path
    ):
        registry = _registry(
            _fix("docker", fix=lambda config, ctx: False, manual_fix="Install Docker Desktop"),
            _fix("git", fix=lambda config, ctx: True, manual_fix="Install git"),
        )
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        failed, fixed = orch.fix("dev").to_dict()["outcomes"]
        assert failed["status"] == "failed"
        assert failed["manual_fix"] == "Install Docker Desktop"
        assert fixed["status"] == "fixed"
        assert fixed["manual_fix"] is None

    def test_no_problems_nothing_to_do(self, stack_config, secrets, executor_factory, tmp_path):
        registry = _registry(_fix("fine", scan=lambda c, x: False, fix=lambda c, x: True))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        report = orch.fix("dev")
        assert report.outcomes == []
        assert report.status == "ok"

    def test_fixes_run_sequentially_in_order(
        self, stack_config, secrets, executor_factory, tmp_path
    ):
        order = []

        def make(name):
            def fix(config, ctx):
                order.append(name)
                return True
            return fix

        registry = _registry(*[_fix(n, fix=make(n)) for n in ("a", "b", "c")])
        orch = _orchestrator(
            registry, stack_config, secrets, executor_factory, tmp_path, max_workers=8
        )
        orch.fix("dev")
        assert order == ["a", "b", "c"]

    def test_warning_failures_do_not_fail_report(
        self, stack_config, secrets, executor_factory, tmp_path
    ):
        registry = _registry(
            _fix("warn", fix=lambda c, x: False, severity=Severity.WARNING)
        )
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        report = orch.fix("dev")
        assert report.ok
        assert report.status == "failed"

    def test_report_to_dict(self, stack_config, secrets, executor_factory, tmp_path):
        registry = _registry(_fix("a", fix=lambda c, x: True))
        orch = _orchestrator(registry, stack_config, secrets, executor_factory, tmp_path)
        data = orch.fix("dev").to_dict()
        assert data["stage"] == "dev"
        assert data["outcomes"][0]["status"] == "fixed"


def test_default_root_is_path(stack_config, secrets, executor_factory):
    orch = ScanFixOrchestrator(
        _registry(), stack_config, ".", secrets, executor_factory=executor_factory
    )
    assert isinstance(orch.root_dir, Path)


@pytest.mark.parametrize("stage", ["dev", "staging", "prod"])
def test_empty_registry_scans_clean(stage, stack_config, secrets, executor_factory, tmp_path):
    orch = _orchestrator(_registry(), stack_config, secrets, executor_factory, tmp_path)
    report = orch.scan(stage)
    assert report.findings == []
    assert report.ok
