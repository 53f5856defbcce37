"""
Bootstrap — everything a command needs before it can run.

Loads stack.yml, builds the registry (built-ins plus any external
plugin packages the config names) and the configured secret store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from stackfix.core.config.loader import find_stack_file, load_stack_config, stack_root
from stackfix.core.models.plugin import ExternalLoadResult
from stackfix.core.models.stack import StackConfig
from stackfix.core.plugins.registry import PluginRegistry
from stackfix.core.secrets.store import SecretStore
from stackfix.plugins.builtin import build_default_registry
from stackfix.plugins.secrets.stores import secrets_config_for

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    """A loaded project: config, root, registry and secrets."""

    config: StackConfig
    root_dir: Path
    config_path: Path
    registry: PluginRegistry
    secrets: SecretStore
    external: list[ExternalLoadResult] = field(default_factory=list)


def load_workspace(
    config_path: Path | None = None,
    registry: PluginRegistry | None = None,
    secrets: SecretStore | None = None,
) -> Workspace:
    """Load the project around ``config_path`` (default: search upward).

    Raises:
        ConfigError: stack.yml missing or invalid.
        PluginNotFoundError: the configured secrets backend is unknown.
    """
    path = config_path or find_stack_file()
    config = load_stack_config(path)
    path = Path(path) if path else Path.cwd()
    root = stack_root(path)

    external: list[ExternalLoadResult] = []
    if registry is None:
        registry = build_default_registry()
        if config.plugins:
            external = registry.load_external(config.plugins, trusted=config.trusted_plugins)

    if secrets is None:
        secrets = registry.create_instance(
            "secrets", config.secrets.backend, secrets_config_for(config, root)
        )
        logger.debug("Secret store: %s", secrets.name)

    return Workspace(
        config=config,
        root_dir=root,
        config_path=path,
        registry=registry,
        secrets=secrets,
        external=external,
    )
