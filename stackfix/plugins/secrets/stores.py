"""Secret store plugins — process environment and dotenv file backends."""

from __future__ import annotations

from pathlib import Path

from stackfix.core.models.fix import Fix, Severity, Stage
from stackfix.core.models.plugin import PluginDescriptor
from stackfix.core.models.stack import SecretsConfig, StackConfig
from stackfix.core.scanfix.context import FixContext
from stackfix.core.secrets.store import DotenvSecretStore, EnvSecretStore


def _secrets_file_fix() -> Fix:
    def scan(config: StackConfig, ctx: FixContext) -> bool:
        return not (ctx.root_dir / config.secrets.path).is_file()

    return Fix(
        id="dev-secrets-file-missing",
        stage=Stage.DEV,
        severity=Severity.WARNING,
        description="The dotenv secrets file does not exist",
        scan=scan,
        manual_fix=(
            "Create the secrets file named by 'secrets.path' in stack.yml "
            "(KEY=value per line, chmod 600)"
        ),
    )


def _backend_is(backend: str):
    def should_load(root_dir: Path, config: StackConfig) -> bool:
        return config.secrets.backend == backend

    return should_load


ENV_PLUGIN = PluginDescriptor(
    id="env",
    category="secrets",
    name="Environment variables",
    version="1.0.0",
    description="Secrets read from the process environment",
    should_load=_backend_is("env"),
    factory=lambda config: EnvSecretStore(),
)

DOTENV_PLUGIN = PluginDescriptor(
    id="dotenv",
    category="secrets",
    name="Dotenv file",
    version="1.0.0",
    description="Secrets read from a KEY=value file",
    fixes=(_secrets_file_fix(),),
    should_load=_backend_is("dotenv"),
    factory=lambda config: DotenvSecretStore(Path(config.path)),
)

PLUGINS = [ENV_PLUGIN, DOTENV_PLUGIN]


def secrets_config_for(config: StackConfig, root_dir: Path) -> SecretsConfig:
    """The secrets config with ``path`` resolved against the project root."""
    path = Path(config.secrets.path)
    if not path.is_absolute():
        path = root_dir / path
    return config.secrets.model_copy(update={"path": str(path)})
