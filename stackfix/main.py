"""
stackfix — CLI entrypoint.

Usage:
    stackfix --help
    stackfix scan [--stage prod]
    stackfix fix --stage dev
    stackfix provision --env prod
    stackfix plugins list
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from stackfix import __version__
from stackfix.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    ENV_LOG_LEVEL,
    setup_logging,
)

STAGE_CHOICES = click.Choice(["dev", "staging", "prod"])
OS_CHOICES = click.Choice(["mac", "ubuntu", "amazon-linux", "windows"])

_SEVERITY_STYLE = {
    "critical": ("✗", "red"),
    "warning": ("⚠", "yellow"),
    "info": ("ℹ", "blue"),
}

_STATUS_STYLE = {
    "fixed": ("✓", "green"),
    "failed": ("✗", "red"),
    "manual": ("⊘", "yellow"),
}


@click.group()
@click.version_option(version=__version__, prog_name="stackfix")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to stack.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """stackfix — scan, fix and provision your deployment targets."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get(ENV_LOG_LEVEL, "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
        quiet_third_party=not debug,
    )


# ── scan ────────────────────────────────────────────────────────


@cli.command()
@click.option("--stage", "-s", type=STAGE_CHOICES, default=None, help="Only this stage (default: all).")
@click.option("--os", "os_name", type=OS_CHOICES, default=None, help="Override the target OS.")
@click.option("--concurrency", type=click.IntRange(min=1), default=4, show_default=True,
              help="Scans run in parallel.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def scan(
    ctx: click.Context,
    stage: str | None,
    os_name: str | None,
    concurrency: int,
    as_json: bool,
) -> None:
    """Report problems without changing anything. Exits 1 on a critical problem."""
    from stackfix.core.use_cases.scan import run_scan

    result = run_scan(
        stage=stage,
        os=os_name,
        concurrency=concurrency,
        config_path=ctx.obj.get("config_path"),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    quiet = ctx.obj.get("quiet", False)
    for report in result.reports:
        problems = report.problems
        click.secho(
            f"\n🔍 {report.stage} ({report.platform}): "
            f"{len(report.findings)} checked, {len(problems)} problem(s)",
            fg="cyan",
            bold=True,
        )
        if not problems:
            if not quiet:
                click.secho("   ✓ No problems found", fg="green")
            continue
        for severity, findings in report.by_severity().items():
            if not findings:
                continue
            marker, color = _SEVERITY_STYLE[str(severity)]
            click.secho(f"   {severity.upper()}", fg=color, bold=True)
            for finding in findings:
                manual = " (manual)" if finding.manual else ""
                click.secho(f"     {marker} {finding.id}{manual}", fg=color)
                click.echo(f"       {finding.fix.description}")
                if finding.manual and finding.manual_fix:
                    click.echo(f"       → {finding.manual_fix}")

    click.echo()
    if not result.ok:
        click.secho("✗ Critical problems found. Run 'stackfix fix' to remediate.", fg="red")
        sys.exit(1)
    click.secho("✓ No critical problems", fg="green")


# ── fix ─────────────────────────────────────────────────────────


@cli.command()
@click.option("--stage", "-s", type=STAGE_CHOICES, default=None, help="Only this stage (default: all).")
@click.option("--os", "os_name", type=OS_CHOICES, default=None, help="Override the target OS.")
@click.option("--concurrency", type=click.IntRange(min=1), default=4, show_default=True,
              help="Scans run in parallel.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def fix(
    ctx: click.Context,
    stage: str | None,
    os_name: str | None,
    concurrency: int,
    as_json: bool,
) -> None:
    """Scan, then remediate every problem found. Exits 1 if a critical problem remains."""
    from stackfix.core.use_cases.fix import run_fix

    result = run_fix(
        stage=stage,
        os=os_name,
        concurrency=concurrency,
        config_path=ctx.obj.get("config_path"),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    verbose = ctx.obj.get("verbose", False)
    for report in result.reports:
        click.secho(f"\n🔧 {report.stage}", fg="cyan", bold=True)
        if not report.outcomes:
            click.secho("   ✓ Nothing to fix", fg="green")
            continue
        for outcome in report.outcomes:
            marker, color = _STATUS_STYLE[outcome.status]
            click.secho(f"   {marker} {outcome.id}", fg=color)
            if outcome.status == "manual" and outcome.manual_fix:
                click.echo(f"     → {outcome.manual_fix}")
            elif outcome.status == "failed":
                if outcome.error:
                    click.echo(f"     {outcome.error}")
                if outcome.manual_fix:
                    click.echo(f"     → {outcome.manual_fix}")
            if verbose:
                for note in outcome.notes:
                    click.echo(f"     · {note}")
        click.echo(
            f"   {report.fixed} fixed, {report.failed} failed, {report.manual} manual"
        )

    click.echo()
    if not result.ok:
        click.secho("✗ Critical problems remain", fg="red")
        sys.exit(1)
    click.secho("✓ Done", fg="green")


# ── provision ───────────────────────────────────────────────────


@cli.command()
@click.option("--env", "environment", required=True, help="Environment to provision (e.g. prod).")
@click.option("--until", default=None, help="Stop after this plan step (and its dependencies).")
@click.option("--no-wait", is_flag=True, help="Skip readiness checks.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def provision(
    ctx: click.Context,
    environment: str,
    until: str | None,
    no_wait: bool,
    as_json: bool,
) -> None:
    """Find or create every cloud resource of an environment."""
    from stackfix.core.use_cases.provision import run_provision

    run = run_provision(
        environment,
        wait_ready=not no_wait,
        until=until,
        config_path=ctx.obj.get("config_path"),
    )

    if as_json:
        click.echo(json.dumps(run.to_dict(), indent=2))
        if not run.ok:
            sys.exit(1)
        return

    if run.error:
        click.secho(f"❌ {run.error}", fg="red")
        if run.failed_role:
            click.echo(f"   Failed step: {run.failed_role}")
        if run.cleaned_up:
            click.echo(f"   Cleaned up: {', '.join(run.cleaned_up)}")
        sys.exit(1)

    result = run.result
    assert result is not None  # guaranteed after error check above
    click.secho(f"\n☁️  {environment}", fg="cyan", bold=True)
    for role, handle in result.handles.items():
        marker = "+" if handle.created else "="
        color = "green" if handle.created else "white"
        click.secho(f"   {marker} {role:<20} {handle.resource_id}", fg=color)
        if handle.attributes.get("key_file"):
            click.secho(f"     🔑 private key saved to {handle.attributes['key_file']}", fg="yellow")

    click.echo()
    if result.ready:
        click.secho(f"✓ {len(result.created)} created, all resources ready", fg="green")
    else:
        click.secho(f"✓ {len(result.created)} created, readiness not confirmed", fg="yellow")


# ── Register sub-command groups from stackfix/ui/cli/ ───────────

from stackfix.ui.cli.plugins import plugins  # noqa: E402

cli.add_command(plugins)


if __name__ == "__main__":
    cli()
