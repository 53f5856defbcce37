"""
Node framework plugin — local checks for projects with a package.json.

Dev-only: dependencies installed, the package manager the lockfile
asks for present, and a ``.env`` created from ``.env.example``.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path

from stackfix.core.models.fix import Fix, Platform, Severity, Stage
from stackfix.core.models.plugin import PluginDescriptor
from stackfix.core.models.stack import StackConfig
from stackfix.core.scanfix.context import FixContext
from stackfix.core.scanfix.fixes import INSTALL_TIMEOUT, tool_missing_fix

logger = logging.getLogger(__name__)

# Lockfile → package manager, first match wins
LOCKFILES = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("package-lock.json", "npm"),
)


class NodeProject:
    """Framework plugin instance: a Node project rooted at ``path``."""

    def __init__(self, path: Path, config: StackConfig | None = None):
        self.path = Path(path)
        self.config = config

    @property
    def package_json(self) -> dict:
        """Parsed package.json; empty when absent or unreadable."""
        pkg = self.path / "package.json"
        if not pkg.is_file():
            return {}
        try:
            return json.loads(pkg.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Cannot parse %s: %s", pkg, e)
            return {}

    @property
    def package_manager(self) -> str:
        declared = self.package_json.get("packageManager", "")
        if declared:
            return declared.split("@", 1)[0]
        for lockfile, manager in LOCKFILES:
            if (self.path / lockfile).is_file():
                return manager
        return "npm"

    @property
    def uses_pnpm(self) -> bool:
        return self.package_manager == "pnpm"

    @property
    def has_dependencies(self) -> bool:
        data = self.package_json
        return bool(data.get("dependencies") or data.get("devDependencies"))

    def install_command(self) -> str:
        return f"{self.package_manager} install"


def _project(ctx: FixContext) -> NodeProject:
    return NodeProject(ctx.root_dir)


def _uses_pnpm(config: StackConfig, ctx: FixContext) -> bool:
    return _project(ctx).uses_pnpm


# ── Fixes ───────────────────────────────────────────────────────


def _node_modules_fix() -> Fix:
    def scan(config: StackConfig, ctx: FixContext) -> bool:
        project = _project(ctx)
        if not project.has_dependencies:
            return False
        return not (project.path / "node_modules").is_dir()

    def fix(config: StackConfig, ctx: FixContext) -> bool:
        project = _project(ctx)
        command = project.install_command()
        ctx.note("Running %s", command)
        receipt = ctx.executor.execute(f"cd {project.path} && {command}", timeout=INSTALL_TIMEOUT)
        if receipt.failed:
            ctx.note("%s failed: %s", command, receipt.error)
            return False
        return True

    return Fix(
        id="dev-node-modules-missing",
        stage=Stage.DEV,
        severity=Severity.WARNING,
        description="Node dependencies are not installed",
        scan=scan,
        fix=fix,
        manual_fix="Run 'npm install' (or pnpm/yarn) in the project root",
    )


def _env_file_fix() -> Fix:
    def scan(config: StackConfig, ctx: FixContext) -> bool:
        root = ctx.root_dir
        return (root / ".env.example").is_file() and not (root / ".env").exists()

    def fix(config: StackConfig, ctx: FixContext) -> bool:
        root = ctx.root_dir
        target = root / ".env"
        if target.exists():
            return True
        shutil.copyfile(root / ".env.example", target)
        ctx.note("Created .env from .env.example")
        return True

    return Fix(
        id="dev-env-file-missing",
        stage=Stage.DEV,
        severity=Severity.WARNING,
        description=".env is missing (an .env.example exists)",
        scan=scan,
        fix=fix,
        manual_fix="cp .env.example .env and fill in the values",
    )


def node_fixes() -> list[Fix]:
    fixes = [
        tool_missing_fix(
            "pnpm", Stage.DEV, platform, severity=Severity.WARNING, when=_uses_pnpm
        )
        for platform in Platform
    ]
    fixes.append(_node_modules_fix())
    fixes.append(_env_file_fix())
    return fixes


PLUGIN = PluginDescriptor(
    id="node",
    category="framework",
    name="Node.js",
    version="1.0.0",
    description="Dependencies, package manager and .env for Node projects",
    fixes=tuple(node_fixes()),
    should_load=lambda root_dir, config: (Path(root_dir) / "package.json").is_file(),
    factory=lambda path, config: NodeProject(path, config),
)
