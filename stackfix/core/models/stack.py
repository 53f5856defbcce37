"""
Stack configuration — loaded from stack.yml.

The engine consumes this read-only. The loader normalises the two
on-disk layouts (environments as top-level keys, or under an
``environments:`` map) into one StackConfig.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from stackfix.core.models.fix import Platform, Stage

# Domains starting with this prefix are template placeholders
PLACEHOLDER_PREFIX = "EXAMPLE"


def stage_from_environment(name: str) -> Stage | None:
    """Map an environment name to the stage it belongs to.

    ``dev`` → dev; ``staging``, ``staging*``, ``stage-*`` → staging;
    ``prod``, ``prod*``, ``production`` → prod. Anything else is None.
    """
    name = name.strip().lower()
    if name in ("dev", "development", "local"):
        return Stage.DEV
    if name.startswith("staging") or name.startswith("stage-") or name == "stage":
        return Stage.STAGING
    if name.startswith("prod"):
        return Stage.PROD
    return None


class SecretsConfig(BaseModel):
    """Where secrets come from."""

    backend: str = "env"
    path: str = ".stackfix/secrets.env"


class EnvironmentConfig(BaseModel):
    """One named deployment target."""

    name: str
    domain: str | None = None
    os: Platform | None = None
    provider: str | None = None
    host: str | None = None
    ssh_user: str = "ubuntu"
    region: str | None = None
    plugins: list[str] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)

    @property
    def stage(self) -> Stage | None:
        return stage_from_environment(self.name)

    @property
    def is_configured(self) -> bool:
        """False when the domain is missing or still a template placeholder."""
        if not self.domain:
            return False
        return not self.domain.upper().startswith(PLACEHOLDER_PREFIX)

    @property
    def target_platform(self) -> Platform:
        """OS of the target. Remote targets default to Ubuntu."""
        return self.os or Platform.UBUNTU

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a value on the environment, falling back to ``settings``."""
        if key in type(self).model_fields and key != "settings":
            value = getattr(self, key)
            return default if value is None else value
        return self.settings.get(key, default)


class StackConfig(BaseModel):
    """Root configuration for one project."""

    name: str
    environments: dict[str, EnvironmentConfig] = Field(default_factory=dict)
    plugins: list[str] = Field(default_factory=list)
    trusted_plugins: list[str] = Field(default_factory=list)
    addons: list[str] = Field(default_factory=list)
    secrets: SecretsConfig = Field(default_factory=SecretsConfig)

    def get_environment(self, name: str) -> EnvironmentConfig | None:
        """Look up an environment by name."""
        return self.environments.get(name)

    def for_stage(self, stage: Stage | str) -> EnvironmentConfig | None:
        """The environment mapped to ``stage``; the loader allows at most one."""
        for env in self.environments.values():
            if env.stage == stage:
                return env
        return None

    def environments_for_stage(self, stage: Stage | str) -> list[EnvironmentConfig]:
        return [env for env in self.environments.values() if env.stage == stage]
