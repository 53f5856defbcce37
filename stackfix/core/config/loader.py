"""
Configuration loader — reads stack.yml into a StackConfig.

Two layouts are accepted and normalised:

    # environments as top-level keys        # environments under a map
    name: shop                              name: shop
    dev: {}                                 environments:
    prod:                                     dev: {}
      domain: shop.example.com                prod:
      provider: aws                             domain: shop.example.com

Top-level keys that are not reserved and hold a mapping are treated
as environments.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from stackfix.core.errors import StackfixError
from stackfix.core.models.fix import Stage
from stackfix.core.models.stack import StackConfig, stage_from_environment

logger = logging.getLogger(__name__)

# Default config filename
STACK_CONFIG_FILE = "stack.yml"

RESERVED_KEYS = frozenset({
    "name",
    "version",
    "environments",
    "plugins",
    "trusted_plugins",
    "addons",
    "secrets",
})


class ConfigError(StackfixError):
    """Raised when stack configuration is invalid or missing."""


def find_stack_file(start_dir: Path | None = None) -> Path | None:
    """Search for stack.yml starting from the given directory, walking up.

    Returns:
        Path to stack.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / STACK_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def extract_environments(data: dict) -> dict[str, dict]:
    """Environment blocks from either layout, in declaration order."""
    envs: dict[str, dict] = {}

    nested = data.get("environments")
    if nested is not None:
        if not isinstance(nested, dict):
            raise ConfigError("'environments' must be a mapping of name → settings")
        for name, block in nested.items():
            envs[str(name)] = dict(block or {})

    for key, value in data.items():
        if key in RESERVED_KEYS:
            continue
        # A bare "dev:" parses as None
        if value is None and stage_from_environment(str(key)) is not None:
            value = {}
        if not isinstance(value, dict):
            continue
        if key in envs:
            raise ConfigError(f"Environment '{key}' is declared twice")
        envs[str(key)] = dict(value)

    return envs


def parse_stack_config(data: dict, source: str = "<config>") -> StackConfig:
    """Validate an already-parsed mapping into a StackConfig."""
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {source}, got {type(data).__name__}")

    envs = extract_environments(data)
    claimed: dict[Stage, str] = {}
    for name in envs:
        stage = stage_from_environment(name)
        if stage is None:
            logger.warning(
                "Environment '%s' in %s does not map to a stage (dev/staging/prod); "
                "its fixes will never apply",
                name, source,
            )
            continue
        # Scans and fixes target one environment per stage
        if stage in claimed:
            raise ConfigError(
                f"Environments '{claimed[stage]}' and '{name}' in {source} both map "
                f"to stage '{stage}'; declare one environment per stage"
            )
        claimed[stage] = name

    payload = {k: v for k, v in data.items() if k in RESERVED_KEYS and k != "environments"}
    payload["environments"] = {
        name: {**block, "name": name} for name, block in envs.items()
    }

    try:
        return StackConfig.model_validate(payload)
    except Exception as e:
        raise ConfigError(f"Invalid stack configuration in {source}: {e}") from e


def load_stack_config(path: Path | None = None) -> StackConfig:
    """Load and validate stack configuration.

    Args:
        path: Explicit path to stack.yml. If None, searches upward.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_stack_file()

    if path is None:
        raise ConfigError(
            f"No {STACK_CONFIG_FILE} found. Create one or specify --config."
        )

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading stack config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    config = parse_stack_config(data, source=str(path))
    logger.info(
        "Loaded stack '%s' with %d environment(s)", config.name, len(config.environments)
    )
    return config


def stack_root(config_path: Path) -> Path:
    """Get the project root directory from a config file path."""
    return config_path.parent.resolve()
