"""
Fix factories — the shared building blocks plugins declare fixes from.

Tool fixes resolve their commands through ``get_commands`` so no OS
syntax leaks into plugins. Requirement fixes are generated by the
registry from each plugin's ``required_config`` / ``required_secrets``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from stackfix.adapters.base import Executor
from stackfix.core.errors import ReadinessTimeoutError
from stackfix.core.models.fix import Fix, Platform, Severity, Stage
from stackfix.core.models.stack import EnvironmentConfig, StackConfig
from stackfix.core.provision.readiness import wait_until
from stackfix.core.scanfix.commands import get_commands
from stackfix.core.scanfix.context import FixContext
from stackfix.core.scanfix.platform import parse_docker_info, parse_version

logger = logging.getLogger(__name__)

INSTALL_TIMEOUT = 900

Predicate = Callable[[StackConfig, FixContext], bool]


# ── Tool presence ───────────────────────────────────────────────


def tool_missing_fix(
    tool: str,
    stage: Stage,
    platform: Platform,
    *,
    severity: Severity = Severity.CRITICAL,
    version_command: str | None = None,
    min_version: tuple[int, ...] | None = None,
    when: Predicate | None = None,
) -> Fix:
    """``{platform}-{stage}-{tool}-missing``: the tool is absent or too old.

    ``when`` narrows the scan further (e.g. "project uses pnpm"); a
    False answer means the check does not apply and reports no problem.
    """
    commands = get_commands(tool, platform)
    label = "locally" if stage == Stage.DEV else f"on {stage} server"

    def problem(ctx: FixContext) -> bool:
        if not ctx.executor.succeeds(commands.check):
            return True
        if version_command and min_version:
            version = parse_version(ctx.executor.run(version_command))
            if version is not None and version < tuple(min_version):
                ctx.note(
                    "%s %s is older than %s",
                    tool,
                    ".".join(map(str, version)),
                    ".".join(map(str, min_version)),
                )
                return True
        return False

    def scan(config: StackConfig, ctx: FixContext) -> bool:
        if not ctx.target_configured:
            return False
        if when is not None and not when(config, ctx):
            return False
        return problem(ctx)

    fix = None
    if commands.install is not None:
        install = commands.install

        def fix(config: StackConfig, ctx: FixContext) -> bool:
            ctx.note("Installing %s %s", tool, ctx.label)
            receipt = ctx.executor.execute(install, timeout=INSTALL_TIMEOUT)
            if receipt.failed:
                ctx.note("Install failed: %s", receipt.error)
                return False
            # Re-runs the scan check, minimum version included
            return not problem(ctx)

    description = f"{tool} is not installed {label}"
    if min_version:
        description = f"{tool} >= {'.'.join(map(str, min_version))} is not installed {label}"

    return Fix(
        id=f"{platform}-{stage}-{tool}-missing",
        stage=stage,
        os=platform,
        severity=severity,
        description=description,
        scan=scan,
        fix=fix,
        manual_fix=commands.manual_fix,
    )


# ── Docker daemon ───────────────────────────────────────────────


def docker_running(executor: Executor) -> bool:
    """Whether the docker daemon answers ``docker info``."""
    receipt = executor.execute("docker info")
    return receipt.ok and parse_docker_info(receipt.output).get("running") == "true"


def docker_running_fix(
    stage: Stage,
    platform: Platform,
    *,
    start_timeout: float = 30.0,
    poll_interval: float = 1.0,
) -> Fix:
    """``{platform}-{stage}-docker-not-running``: installed, daemon down."""
    commands = get_commands("docker", platform)
    label = "locally" if stage == Stage.DEV else f"on {stage} server"

    def scan(config: StackConfig, ctx: FixContext) -> bool:
        if not ctx.target_configured:
            return False
        # A missing docker is reported by the -missing fix
        if not ctx.executor.succeeds(commands.check):
            return False
        return not docker_running(ctx.executor)

    fix = None
    if commands.start is not None:
        start = commands.start

        def fix(config: StackConfig, ctx: FixContext) -> bool:
            executor = ctx.executor
            if docker_running(executor):
                ctx.note("Docker is already running")
                return True
            ctx.note("Starting Docker %s", ctx.label)
            receipt = executor.execute(start)
            if receipt.failed:
                ctx.note("Failed to start Docker: %s", receipt.error)
                return False
            try:
                wait_until(
                    lambda: docker_running(executor),
                    timeout=start_timeout,
                    interval=poll_interval,
                    description="docker daemon",
                )
            except ReadinessTimeoutError:
                ctx.note("Docker did not come up within %ss", start_timeout)
                return False
            ctx.note("Docker started")
            return True

    return Fix(
        id=f"{platform}-{stage}-docker-not-running",
        stage=stage,
        os=platform,
        severity=Severity.CRITICAL,
        description=f"Docker is not running {label}",
        scan=scan,
        fix=fix,
        manual_fix=f"Start Docker: {commands.start}" if commands.start else commands.manual_fix,
    )


# ── Requirements ────────────────────────────────────────────────


def missing_config_fix(env: EnvironmentConfig, key: str, plugin: str) -> Fix:
    """Manual-only fix: ``key`` is not set for ``env``."""
    env_name = env.name

    def scan(config: StackConfig, ctx: FixContext) -> bool:
        current = config.get_environment(env_name)
        return current is None or current.get(key) in (None, "")

    return Fix(
        id=f"missing-config-{env_name}-{key}",
        stage=env.stage,
        severity=Severity.CRITICAL,
        description=f"'{key}' is not set for environment '{env_name}' (required by {plugin})",
        scan=scan,
        manual_fix=f"Set '{key}' under '{env_name}' in stack.yml",
        plugin=plugin,
    )


def missing_secret_fix(env: EnvironmentConfig, secret: str, plugin: str) -> Fix:
    """Manual-only fix: ``secret`` is absent from the secret store."""

    def scan(config: StackConfig, ctx: FixContext) -> bool:
        return not ctx.secrets.has(secret)

    return Fix(
        id=f"missing-secret-{env.name}-{secret.lower().replace('_', '-')}",
        stage=env.stage,
        severity=Severity.CRITICAL,
        description=f"Secret {secret} is not set (required by {plugin} for '{env.name}')",
        scan=scan,
        manual_fix=f"Add {secret} to the secret store",
        plugin=plugin,
    )
