"""
Executor selection — which transport a stage's fixes run through.
"""

from __future__ import annotations

import os
from pathlib import Path

from stackfix.adapters.base import Executor
from stackfix.adapters.local import LocalExecutor
from stackfix.adapters.ssh import SshExecutor
from stackfix.core.errors import ConfigurationError
from stackfix.core.models.fix import Stage
from stackfix.core.models.stack import EnvironmentConfig
from stackfix.core.secrets.store import SecretStore, ssh_key_secret_name

# Set on the target host itself (e.g. by a deploy job) to run remote
# stages through the local shell instead of ssh.
ON_SERVER_ENV = "STACKFIX_ON_SERVER"


def is_on_server() -> bool:
    return os.environ.get(ON_SERVER_ENV, "").lower() in ("1", "true", "yes")


def executor_for(
    stage: Stage | str,
    env: EnvironmentConfig | None,
    secrets: SecretStore,
    root_dir: Path | None = None,
) -> Executor:
    """Build the executor for ``stage``.

    Raises:
        ConfigurationError: a remote stage has no host or no SSH key.
    """
    if stage == Stage.DEV or is_on_server():
        return LocalExecutor(cwd=root_dir)

    if env is None:
        raise ConfigurationError(f"No environment is configured for stage '{stage}'")

    if not env.host:
        raise ConfigurationError(
            f"Environment '{env.name}' has no host. Set 'host' in stack.yml "
            "or provision the environment first."
        )

    key_name = ssh_key_secret_name(env.name)
    key_material = secrets.get(key_name)
    if not key_material:
        raise ConfigurationError(
            f"Secret '{key_name}' (SSH private key for '{env.name}') is not set"
        )

    return SshExecutor(host=env.host, user=env.ssh_user, key_material=key_material)
