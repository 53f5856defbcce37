"""
CLI commands for the plugin registry.
"""

from __future__ import annotations

import json
import sys

import click


@click.group()
def plugins() -> None:
    """Plugin registry — list registered plugins and their fixes."""


@plugins.command("list")
@click.option("--category", default=None, help="Only this category.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_plugins(ctx: click.Context, category: str | None, as_json: bool) -> None:
    """List built-in and configured external plugins."""
    from stackfix.core.errors import StackfixError
    from stackfix.core.use_cases.bootstrap import load_workspace
    from stackfix.plugins.builtin import build_default_registry

    external = []
    try:
        workspace = load_workspace(ctx.obj.get("config_path"))
        registry = workspace.registry
        external = workspace.external
    except StackfixError:
        # Outside a project only the built-ins are listed
        registry = build_default_registry()

    rows = registry.list(category)

    if as_json:
        click.echo(json.dumps({
            "plugins": [r.model_dump() for r in rows],
            "external": [e.model_dump() for e in external],
        }, indent=2))
        return

    if not rows:
        click.echo("No plugins registered.")
        return

    current = None
    for row in rows:
        if row.category != current:
            current = row.category
            click.secho(f"\n  {current}", fg="cyan", bold=True)
        click.echo(f"    • {row.id:<16} {row.name} {row.version}  ({row.fixes} fixes)")

    failed = [e for e in external if not e.loaded]
    for entry in external:
        if entry.loaded:
            marker = "✅" if entry.approved else "🔓"
            click.echo(f"\n  {marker} {entry.name}: {', '.join(entry.plugins)}")
        else:
            click.secho(f"\n  ❌ {entry.name}: {entry.error}", fg="red")
    click.echo()
    if failed:
        sys.exit(1)
