"""
Server plugins — shared fix set and target wrapper.

A server plugin owns the tool fixes for one platform across every
stage. Scans for a stage only run when the applicability filter
selected that platform for it.
"""

from __future__ import annotations

from pathlib import Path

from stackfix.adapters.base import Executor
from stackfix.adapters.factory import executor_for
from stackfix.core.errors import ConfigurationError
from stackfix.core.models.fix import Fix, Platform, Severity, Stage
from stackfix.core.models.stack import EnvironmentConfig, StackConfig
from stackfix.core.scanfix.commands import PlatformCommands, get_commands
from stackfix.core.scanfix.fixes import docker_running_fix, tool_missing_fix
from stackfix.core.scanfix.platform import detect_platform
from stackfix.core.secrets.store import SecretStore

NODE_MIN_VERSION = (18, 0, 0)


def server_fixes(platform: Platform) -> list[Fix]:
    """Docker and git on every stage; node (>= 18) locally; certbot on servers."""
    fixes: list[Fix] = []
    for stage in (Stage.DEV, Stage.STAGING, Stage.PROD):
        fixes.append(tool_missing_fix("docker", stage, platform))
        fixes.append(docker_running_fix(stage, platform))
        fixes.append(tool_missing_fix("git", stage, platform, severity=Severity.WARNING))
        if stage != Stage.DEV:
            fixes.append(
                tool_missing_fix("certbot", stage, platform, severity=Severity.WARNING)
            )
        if stage == Stage.DEV:
            fixes.append(
                tool_missing_fix(
                    "node",
                    stage,
                    platform,
                    version_command="node --version",
                    min_version=NODE_MIN_VERSION,
                )
            )
    return fixes


def targets_platform(platform: Platform):
    """``targets`` predicate: remote environments running ``platform``."""

    def targets(env: EnvironmentConfig) -> bool:
        return env.stage not in (None, Stage.DEV) and env.target_platform == platform

    return targets


def should_load_for(platform: Platform):
    """``should_load``: this machine or any remote environment runs ``platform``."""
    targets = targets_platform(platform)

    def should_load(root_dir: Path, config: StackConfig) -> bool:
        if detect_platform() == platform:
            return True
        return any(targets(env) for env in config.environments.values())

    return should_load


class ServerTarget:
    """A server plugin instance: executors and commands for one platform."""

    def __init__(self, config: StackConfig, secrets: SecretStore, platform: Platform):
        self.config = config
        self.secrets = secrets
        self.platform = platform

    def commands(self, tool: str) -> PlatformCommands:
        return get_commands(tool, self.platform)

    def executor(self, environment: str, root_dir: Path | None = None) -> Executor:
        """Executor for a named environment.

        Raises:
            ConfigurationError: unknown environment, or no host/key.
        """
        env = self.config.get_environment(environment)
        if env is None or env.stage is None:
            raise ConfigurationError(f"Unknown environment: {environment}")
        return executor_for(env.stage, env, self.secrets, root_dir)
